"""
Pipeline package exports.

Validation, calculations and document building are pure functions; the
SubmissionPipeline in ``pipeline.runner`` wires them to a renderer, a
transport and the draft store.
"""

from pipeline.config import PipelineConfig
from pipeline.schema import FormType, parse_fields
from pipeline.validate import form_completion, validate_form

__all__ = ["FormType", "PipelineConfig", "form_completion", "parse_fields", "validate_form"]
