# config.py
# Trigger configuration as JSON, using the same field names as the build
# configuration form (preJobName, postFailIfDownstreamFails, ...).
from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .model import JobSpec, TriggerConfig


class TriggerSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    pre_job_name: str = Field(default="", alias="preJobName")
    pre_job_parameters: str = Field(default="", alias="preJobParameters")
    pre_properties_file_to_inject: str = Field(default="", alias="prePropertiesFileToInject")
    post_job_name: str = Field(default="", alias="postJobName")
    post_job_parameters: str = Field(default="", alias="postJobParameters")
    post_properties_file_to_inject: str = Field(default="", alias="postPropertiesFileToInject")
    post_fail_if_downstream_fails: bool = Field(default=False, alias="postFailIfDownstreamFails")

    @field_validator(
        "pre_job_name",
        "pre_job_parameters",
        "pre_properties_file_to_inject",
        "post_job_name",
        "post_job_parameters",
        "post_properties_file_to_inject",
        mode="before",
    )
    @classmethod
    def _none_is_empty(cls, v: Optional[str]) -> str:
        return "" if v is None else v

    def to_trigger_config(self) -> TriggerConfig:
        return TriggerConfig(
            pre_job=JobSpec(self.pre_job_name, self.pre_job_parameters, self.pre_properties_file_to_inject),
            post_job=JobSpec(self.post_job_name, self.post_job_parameters, self.post_properties_file_to_inject),
            post_fail_if_downstream_fails=self.post_fail_if_downstream_fails,
        )


def load_trigger_config(path: str | Path) -> TriggerConfig:
    """
    Read a JSON trigger configuration file.

    Raises:
        ConfigurationError: unreadable file or invalid content
    """
    p = Path(path).expanduser()
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Could not read trigger configuration {p}: {e}", path=str(p)) from e

    try:
        settings = TriggerSettings.model_validate_json(text)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(x) for x in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid trigger configuration {p}: {problems}", path=str(p)) from e
    return settings.to_trigger_config()
