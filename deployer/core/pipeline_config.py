"""
Pipeline Config
===============
Loads the YAML pipeline definition that describes one Build & Deploy
workflow: which branch deploys, how the source is checked out, which pinned
generator builds it and where the output is published.

Example deploy.yml:

    name: Build & Deploy
    source_repository: https://github.com/owner/blog
    branch: main
    inputs:
      logLevel: warning
      tags: ""
    checkout:
      submodules: true        # true | recursive | false
      fetch_depth: 0          # 0 = full history
    generator:
      version: 0.115.4
      extended: true
      minify: true
    publish:
      external_repository: owner/owner.github.io
      publish_branch: main
      keep_files: true

A missing file yields the defaults above (minus the repositories, which
must be supplied before a Run can publish). Invalid content raises
ConfigError at startup rather than in the middle of a Run.
"""
import os
import logging
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from deployer.core.constants import (
    DEFAULT_BRANCH,
    DEFAULT_LOG_LEVEL_INPUT,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_WORKFLOW_NAME,
    HUGO_IMAGE_REPO,
    HUGO_VERSION,
)
from deployer.core.errors import ConfigError

logger = logging.getLogger(__name__)


class InputDefaults(BaseModel):
    log_level: str = Field(DEFAULT_LOG_LEVEL_INPUT, alias="logLevel")
    tags: str = ""

    model_config = {"populate_by_name": True}


class CheckoutSettings(BaseModel):
    submodules: Union[bool, str] = True
    fetch_depth: int = 0

    @field_validator("submodules")
    @classmethod
    def validate_submodules(cls, v):
        if isinstance(v, str) and v != "recursive":
            raise ValueError("submodules must be true, false or 'recursive'")
        return v

    @field_validator("fetch_depth")
    @classmethod
    def validate_depth(cls, v: int) -> int:
        if v < 0:
            raise ValueError("fetch_depth cannot be negative")
        return v


class GeneratorSettings(BaseModel):
    version: str = HUGO_VERSION
    extended: bool = True
    minify: bool = True
    output_dir: str = DEFAULT_OUTPUT_DIR
    image: Optional[str] = None

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v):
        # YAML reads 0.115 as a float
        return str(v).lstrip("v")

    @property
    def docker_image(self) -> str:
        if self.image:
            return self.image
        flavor = "exts" if self.extended else "std"
        return f"{HUGO_IMAGE_REPO}:{flavor}-{self.version}"


class PublishSettings(BaseModel):
    external_repository: str = ""
    publish_branch: str = DEFAULT_BRANCH
    keep_files: bool = True
    cname: Optional[str] = None
    nojekyll: bool = True
    exclude_assets: List[str] = [".github"]
    commit_message: Optional[str] = None

    @field_validator("external_repository")
    @classmethod
    def validate_repository(cls, v: str) -> str:
        v = v.strip()
        if v and v.count("/") != 1:
            raise ValueError("external_repository must look like 'owner/name'")
        return v


class PipelineConfig(BaseModel):
    name: str = DEFAULT_WORKFLOW_NAME
    source_repository: str = ""
    branch: str = DEFAULT_BRANCH
    inputs: InputDefaults = InputDefaults()
    checkout: CheckoutSettings = CheckoutSettings()
    generator: GeneratorSettings = GeneratorSettings()
    publish: PublishSettings = PublishSettings()

    @property
    def deploy_ref(self) -> str:
        return f"refs/heads/{self.branch}"

    def concurrency_group(self, ref: str) -> str:
        """Mirror of `${{ github.workflow }}-${{ github.ref }}`."""
        return f"{self.name}-{ref}"


def load_pipeline_config(path: str) -> PipelineConfig:
    """
    Read and validate a pipeline definition.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    PipelineConfig
        Validated config; defaults when the file does not exist.
    """
    if not os.path.isfile(path):
        logger.warning("Pipeline config %s not found, using defaults", path)
        return PipelineConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    try:
        config = PipelineConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid pipeline config {path}: {e}") from e

    logger.info(
        "Loaded pipeline '%s' | branch=%s | target=%s@%s",
        config.name, config.branch,
        config.publish.external_repository or "<unset>",
        config.publish.publish_branch,
    )
    return config
