import os

from deployer.utils.sync_policy import apply_sync, list_files, plan_sync


def _tree(root, files):
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def test_keep_files_preserves_unmanaged(tmp_path):
    out, target = tmp_path / "out", tmp_path / "target"
    _tree(out, {"index.html": "new", "posts/a.html": "a"})
    _tree(target, {"index.html": "old", "CNAME": "blog.example.com", ".git/HEAD": "ref"})

    plan = plan_sync(str(out), str(target), keep_files=True)
    apply_sync(plan, str(out), str(target))

    assert plan.preserved == ["CNAME"]
    assert plan.delete == []
    assert (target / "index.html").read_text() == "new"
    assert (target / "posts/a.html").read_text() == "a"
    assert (target / "CNAME").read_text() == "blog.example.com"


def test_without_keep_files_unmanaged_removed(tmp_path):
    out, target = tmp_path / "out", tmp_path / "target"
    _tree(out, {"index.html": "new"})
    _tree(target, {"CNAME": "x", "old/page.html": "stale", ".git/HEAD": "ref"})

    plan = plan_sync(str(out), str(target), keep_files=False)
    apply_sync(plan, str(out), str(target))

    assert sorted(plan.delete) == ["CNAME", "old/page.html"]
    assert not (target / "CNAME").exists()
    assert not (target / "old").exists()
    # .git is never touched
    assert (target / ".git/HEAD").read_text() == "ref"


def test_excluded_assets_not_copied(tmp_path):
    out, target = tmp_path / "out", tmp_path / "target"
    _tree(out, {"index.html": "x", ".github/workflows/ci.yml": "on: push"})
    target.mkdir()

    plan = plan_sync(str(out), str(target), exclude_assets=[".github"])
    apply_sync(plan, str(out), str(target))

    assert plan.copy == ["index.html"]
    assert not (target / ".github").exists()


def test_list_files_skips_git(tmp_path):
    _tree(tmp_path, {"a.txt": "", "sub/b.txt": "", ".git/config": ""})
    assert list_files(str(tmp_path)) == {"a.txt", "sub/b.txt"}
    assert list_files(str(tmp_path / "missing")) == set()
    assert os.path.isdir(tmp_path / ".git")


def test_build_file_replaces_target_directory(tmp_path):
    out, target = tmp_path / "out", tmp_path / "target"
    _tree(out, {"feed": "<rss/>"})
    _tree(target, {"feed/index.xml": "old", "CNAME": "x"})

    plan = plan_sync(str(out), str(target), keep_files=True)
    apply_sync(plan, str(out), str(target))

    assert plan.delete == ["feed/index.xml"]
    assert plan.preserved == ["CNAME"]
    assert (target / "feed").is_file()
    assert (target / "feed").read_text() == "<rss/>"
    assert list_files(str(target)) == {"feed", "CNAME"}


def test_build_directory_replaces_target_file(tmp_path):
    out, target = tmp_path / "out", tmp_path / "target"
    _tree(out, {"tags/go/index.html": "go"})
    _tree(target, {"tags": "flat file", "CNAME": "x"})

    plan = plan_sync(str(out), str(target), keep_files=True)
    apply_sync(plan, str(out), str(target))

    assert plan.delete == ["tags"]
    assert (target / "tags" / "go" / "index.html").read_text() == "go"
    assert (target / "CNAME").read_text() == "x"
