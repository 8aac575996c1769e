"""
Pipeline definition parser and validator.
"""

import os
import yaml
from typing import List, Dict, Any, Optional

from orchestrator.src.errors import DefinitionError
from orchestrator.src.models.pipeline import PipelineDefinition, Stage

PIPELINE_FILENAMES = [
    ".pipeline.yml",
    ".pipeline.yaml",
    "pipeline.yml",
    "pipeline.yaml",
]

def parse_pipeline_config(yaml_content: str) -> PipelineDefinition:
    """Parse pipeline YAML (or JSON) configuration from string."""
    try:
        config = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise DefinitionError(f"Invalid YAML: {e}")

    return validate_config(config)

def parse_pipeline_dict(config: Dict[str, Any]) -> PipelineDefinition:
    """Validate pipeline configuration from dict."""
    return validate_config(config)

def load_pipeline_file(path: str) -> PipelineDefinition:
    """Read and validate a pipeline definition file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise DefinitionError(f"Cannot read pipeline file {path}: {e.strerror}")
    except UnicodeDecodeError as e:
        raise DefinitionError(f"Pipeline file {path} is not valid UTF-8: {e.reason}")

    return parse_pipeline_config(content)

def find_pipeline_file(workspace_path: str) -> Optional[str]:
    """Locate a pipeline definition checked into a workspace."""
    for filename in PIPELINE_FILENAMES:
        candidate = os.path.join(workspace_path, filename)
        if os.path.isfile(candidate):
            return candidate
    return None

def validate_config(config: Optional[Dict[str, Any]]) -> PipelineDefinition:
    """Validate pipeline configuration structure."""
    if not config:
        raise DefinitionError("Empty pipeline configuration")

    if not isinstance(config, dict):
        raise DefinitionError("Pipeline configuration must be a dictionary")

    name = config.get("name", "Unnamed Pipeline")
    if not isinstance(name, str):
        raise DefinitionError("Pipeline 'name' must be a string")

    if "stages" not in config:
        raise DefinitionError("Pipeline must have 'stages' defined")

    stages = config["stages"]
    if not isinstance(stages, list):
        raise DefinitionError("Pipeline 'stages' must be a list")

    validated_stages = [validate_stage(stage, i) for i, stage in enumerate(stages)]

    definition = PipelineDefinition(
        name=name,
        stages=validated_stages,
        post=validate_post(config.get("post")),
        env=validate_env(config.get("env"), "Pipeline"),
    )
    validate_definition(definition)
    return definition

def validate_stage(stage: Dict[str, Any], index: int) -> Stage:
    """Validate a single pipeline stage."""
    if not isinstance(stage, dict):
        raise DefinitionError(f"Stage {index} must be a dictionary")

    if "name" not in stage:
        raise DefinitionError(f"Stage {index} missing 'name'")

    if "steps" not in stage:
        raise DefinitionError(f"Stage {index} missing 'steps'")

    if not isinstance(stage["name"], str):
        raise DefinitionError(f"Stage {index} 'name' must be a string")

    steps = stage["steps"]
    if not isinstance(steps, list):
        raise DefinitionError(f"Stage {index} 'steps' must be a list")

    for j, cmd in enumerate(steps):
        if not isinstance(cmd, str):
            raise DefinitionError(f"Stage {index} step {j} must be a string")

    timeout = stage.get("timeout")
    if timeout is not None:
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise DefinitionError(f"Stage {index} 'timeout' must be a positive number")

    return Stage(
        name=stage["name"],
        steps=steps,
        env=validate_env(stage.get("env"), f"Stage {index}"),
        timeout=timeout,
    )

def validate_post(post: Any) -> List[str]:
    """Accept either a list of commands or an {always: [...]} mapping."""
    if post is None:
        return []

    if isinstance(post, dict):
        unknown = set(post) - {"always"}
        if unknown:
            raise DefinitionError(
                f"Unsupported post condition(s): {', '.join(sorted(unknown))}"
            )
        post = post.get("always") or []

    if not isinstance(post, list):
        raise DefinitionError("Pipeline 'post' must be a list")

    for j, cmd in enumerate(post):
        if not isinstance(cmd, str):
            raise DefinitionError(f"Post action {j} must be a string")

    return post

def validate_env(env: Any, owner: str) -> Dict[str, str]:
    if env is None:
        return {}

    if not isinstance(env, dict):
        raise DefinitionError(f"{owner} 'env' must be a mapping")

    # YAML turns unquoted values into ints/bools
    return {str(key): str(value) for key, value in env.items()}

def validate_definition(definition: PipelineDefinition):
    """Check the structural invariants of an already built definition."""
    if not definition.stages:
        raise DefinitionError("Pipeline must have at least one stage")

    seen = set()
    for i, stage in enumerate(definition.stages):
        if not stage.name.strip():
            raise DefinitionError(f"Stage {i} 'name' must not be empty")

        if stage.name in seen:
            raise DefinitionError(f"Duplicate stage name '{stage.name}'")
        seen.add(stage.name)

        if not stage.steps:
            raise DefinitionError(f"Stage '{stage.name}' must have at least one step")
