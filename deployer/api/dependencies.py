"""
API Dependencies
Process-wide pipeline config and controller, built lazily on first use.
Tests replace them through `app.dependency_overrides`.
"""
from functools import lru_cache

from deployer.agents.controller import RunController
from deployer.agents.pipeline import DeployPipeline
from deployer.core.config import PIPELINE_CONFIG
from deployer.core.pipeline_config import PipelineConfig, load_pipeline_config
from deployer.services.run_writer import RunWriter


@lru_cache(maxsize=1)
def get_pipeline_config() -> PipelineConfig:
    return load_pipeline_config(PIPELINE_CONFIG)


@lru_cache(maxsize=1)
def get_controller() -> RunController:
    writer = RunWriter()
    pipeline = DeployPipeline(get_pipeline_config(), writer=writer)
    return RunController(pipeline, history=writer.load_runs())
