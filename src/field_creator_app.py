from flask import Flask, request, jsonify
import os
import logging

from bitrix_utils import configure_logging, _make_session
from field_creator import DEFAULT_LABEL_LANG, REQUEST_DELAY, FieldBatchConfig, run_batch

PORT = int(os.environ.get("PORT", "8000"))
MAX_QUANTITY = 100

STRING_FIELDS = ("webhook", "fieldName", "entity", "fieldType", "listOptions", "lang")


def _env_delay():
    return float(os.environ.get("FIELD_REQUEST_DELAY", REQUEST_DELAY))


def _reject(message):
    return jsonify({"status": "error", "error": message, "created": 0, "failed": 0, "logs": []}), 400


def create_app(delay=None, session_factory=None, sleep=None):
    """Build the service. ``session_factory`` and ``sleep`` are swapped out in tests."""
    app = Flask(__name__)
    app.config["FIELD_REQUEST_DELAY"] = _env_delay() if delay is None else delay
    make_session = session_factory or _make_session

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"}), 200

    @app.route("/fields", methods=["POST"])
    def fields():
        payload = request.get_json(force=True, silent=True) or {}
        if not isinstance(payload, dict):
            return _reject("request body must be a JSON object")
        wrong = [k for k in STRING_FIELDS if payload.get(k) is not None and not isinstance(payload[k], str)]
        if wrong:
            return _reject("must be strings: " + ", ".join(wrong))
        try:
            quantity = int(payload.get("quantity") or 1)
        except (TypeError, ValueError):
            return _reject("quantity must be an integer")

        config = FieldBatchConfig(
            webhook=(payload.get("webhook") or "").strip(),
            field_name=payload.get("fieldName") or "",
            quantity=max(1, min(MAX_QUANTITY, quantity)),
            entity=payload.get("entity") or "leads",
            field_type=payload.get("fieldType") or "string",
            list_options=payload.get("listOptions") or "",
            label_lang=payload.get("lang") or DEFAULT_LABEL_LANG,
        )
        kwargs = {"delay": app.config["FIELD_REQUEST_DELAY"]}
        if sleep is not None:
            kwargs["sleep"] = sleep
        session = make_session()
        try:
            result = run_batch(config, session=session, **kwargs)
        finally:
            session.close()
        if result.error:
            logging.warning("Rejected field batch: %s", result.error)
            return _reject(result.error)

        return jsonify({
            "status": "ok" if not result.failed else "error",
            "error": "",
            "created": result.created,
            "failed": result.failed,
            "logs": result.logs.to_list(),
        }), 200

    return app


if __name__ == "__main__":
    configure_logging()
    create_app().run(host="0.0.0.0", port=PORT)
