"""
Flask application for FVU request intake.
JSON API used by the request forms: defaults/prefill, live validation, drafts
and submission.
"""

import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from pydantic import ValidationError
from werkzeug.exceptions import BadRequest

from jobs.autosave import AutoSaver
from jobs.store import get_key_value_store
from pipeline.calculations import parse_time_offset, retention_info, video_duration
from pipeline.config import FORM_TITLES, PipelineConfig
from pipeline.drafts import DraftStore, KeyValueStore
from pipeline.officer_storage import OfficerInfoStore
from pipeline.pdf_renderer import PdfReportRenderer, ReportRenderer
from pipeline.runner import SubmissionPipeline
from pipeline.schema import FormType, parse_fields
from pipeline.transport import SubmissionTransport, make_transport
from pipeline.validate import active_dependents, form_completion, validate_form

# Load environment variables from .env file (for local development)
load_dotenv()

logger = logging.getLogger(__name__)


def _form_type(value: str) -> Optional[FormType]:
    try:
        return FormType(value)
    except ValueError:
        return None


def create_app(
    config: Optional[PipelineConfig] = None,
    store: Optional[KeyValueStore] = None,
    transport: Optional[SubmissionTransport] = None,
    renderer: Optional[ReportRenderer] = None,
    clock: Callable[[], datetime] = datetime.now,
    sleep: Optional[Callable[[float], None]] = None,
) -> Flask:
    """
    Build the Flask app. Every collaborator can be injected for tests; the
    defaults come from the environment.
    """
    config = config or PipelineConfig.from_env()
    store = store if store is not None else get_key_value_store()
    transport = transport or make_transport(config)
    renderer = renderer or PdfReportRenderer()

    app = Flask(__name__)
    app.logger.setLevel(logging.INFO)
    app.config["MAX_CONTENT_LENGTH"] = 2 * 1024 * 1024

    drafts = DraftStore(store, config)
    officers = OfficerInfoStore(store, config)
    autosavers = {form_type: AutoSaver(drafts, form_type) for form_type in FormType}
    pipeline_kwargs: Dict[str, Any] = {"clock": clock}
    if sleep is not None:
        pipeline_kwargs["sleep"] = sleep
    pipelines = {
        form_type: SubmissionPipeline(
            config, transport, renderer, drafts,
            officer_store=officers,
            autosaver=autosavers[form_type],
            **pipeline_kwargs,
        )
        for form_type in FormType
    }
    app.extensions["fvu"] = {
        "config": config,
        "drafts": drafts,
        "officers": officers,
        "autosavers": autosavers,
        "pipelines": pipelines,
    }

    def _unknown_form(name: str):
        return jsonify({"success": False, "error": f"Unknown form type: {name}"}), 404

    def _json_object() -> Dict[str, Any]:
        data = request.get_json(silent=True)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise BadRequest("Request body must be a JSON object")
        return data

    def _parse_body(form_type: FormType):
        data = _json_object()
        fields_data = data.get("fields", data)
        return parse_fields(form_type, fields_data)

    @app.errorhandler(ValidationError)
    def handle_bad_fields(e: ValidationError):
        return jsonify({"success": False, "error": "Invalid field set", "details": e.errors(include_url=False)}), 400

    @app.errorhandler(BadRequest)
    def handle_bad_request(e: BadRequest):
        return jsonify({"success": False, "error": e.description}), 400

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "backend": config.backend})

    @app.route("/api/<form_name>/defaults")
    def defaults(form_name: str):
        """Officer pre-fill, draft presence and first-use flag for a form."""
        form_type = _form_type(form_name)
        if form_type is None:
            return _unknown_form(form_name)
        return jsonify({
            "success": True,
            "form_type": form_type.value,
            "title": FORM_TITLES[form_type.value],
            "fields": officers.apply_defaults({}),
            "first_time": officers.is_first_time(),
            "has_draft": drafts.has_draft(form_type),
            "draft_age": drafts.age_of(form_type),
        })

    @app.route("/api/officer/acknowledge", methods=["POST"])
    def acknowledge_officer_storage():
        officers.acknowledge()
        return jsonify({"success": True})

    @app.route("/api/officer", methods=["DELETE"])
    def clear_officer():
        return jsonify({"success": officers.clear()})

    @app.route("/api/<form_name>/validate", methods=["POST"])
    def validate(form_name: str):
        form_type = _form_type(form_name)
        if form_type is None:
            return _unknown_form(form_name)
        fields = _parse_body(form_type)
        result = validate_form(fields, clock(), config)
        completion = form_completion(fields, config)
        return jsonify({
            "success": True,
            "is_valid": result.is_valid,
            "field_errors": result.field_errors,
            "first_invalid_field": result.first_invalid_field,
            "completion": completion.percentage,
            "is_complete": completion.is_complete,
            "visible_dependents": sorted(active_dependents(fields.field_map())),
        })

    @app.route("/api/calculations", methods=["POST"])
    def calculations():
        """Live retention / duration / offset previews for individual inputs."""
        data = _json_object()
        response: Dict[str, Any] = {"success": True}
        if data.get("dvr_earliest_date"):
            response["retention"] = retention_info(data["dvr_earliest_date"], clock(), config.retention).model_dump()
        if data.get("start_time") and data.get("end_time"):
            response["duration"] = video_duration(data["start_time"], data["end_time"]).model_dump()
        if data.get("time_offset"):
            response["time_offset"] = parse_time_offset(data["time_offset"]).model_dump(mode="json")
        return jsonify(response)

    @app.route("/api/<form_name>/draft", methods=["GET", "POST", "DELETE"])
    def draft(form_name: str):
        form_type = _form_type(form_name)
        if form_type is None:
            return _unknown_form(form_name)

        if request.method == "GET":
            data = drafts.load(form_type)
            if data is None:
                return jsonify({"success": False, "error": "No draft found"}), 404
            return jsonify({"success": True, "data": data, "age": drafts.age_of(form_type)})

        if request.method == "DELETE":
            autosavers[form_type].cancel()
            return jsonify({"success": drafts.clear(form_type)})

        body = _json_object()
        fields = parse_fields(form_type, body.get("fields", {}))
        if body.get("debounce"):
            scheduled = autosavers[form_type].schedule(fields.model_dump())
            return jsonify({"success": True, "scheduled": scheduled}), 202
        saved = drafts.save(form_type, fields.model_dump())
        return jsonify({"success": saved}), (200 if saved else 500)

    @app.route("/api/<form_name>/submit", methods=["POST"])
    def submit(form_name: str):
        form_type = _form_type(form_name)
        if form_type is None:
            return _unknown_form(form_name)
        fields = _parse_body(form_type)
        outcome = pipelines[form_type].submit(fields)
        if outcome is None:
            return jsonify({"success": False, "error": "A submission is already in progress"}), 409
        status = 200
        if not outcome.success:
            status = 422 if outcome.field_errors else 502
        return jsonify(outcome.model_dump(mode="json")), status

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.environ.get("PORT", os.environ.get("FLASK_PORT", 5000)))
    create_app().run(host="0.0.0.0", port=port, debug=False)
