import logging

from flask import Blueprint, jsonify, request

from app.services import recommendations as rec_service
from recommender.errors import StorageError, UnknownEventError
from recommender.features import MUTE_AUTHOR, MUTE_CATEGORY, MUTE_VENUE
from recommender.types import TrainingAction
from utils.parsing import parse_int, parse_list

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")

MUTE_TYPES = {MUTE_AUTHOR, MUTE_VENUE, MUTE_CATEGORY}


@api_bp.errorhandler(StorageError)
def handle_storage_error(exc):
    logger.error("Storage failure: %s", exc)
    return jsonify({"error": "storage failure", "detail": str(exc)}), 500


def _limit(name, default):
    value = parse_int(request.args.get(name), default)
    return max(1, min(value, 500))


@api_bp.get("/documents/<doc_id>/score")
def document_score(doc_id):
    ctx = rec_service.get_context()
    if ctx.store.get_document_detail(doc_id) is None:
        return jsonify({"error": "Document not found"}), 404
    score = ctx.engine.score(doc_id)
    return jsonify({"id": doc_id, **score.to_dict()})


@api_bp.get("/documents/<doc_id>/breakdown")
def document_breakdown(doc_id):
    breakdown = rec_service.get_context().engine.score_breakdown(doc_id)
    if breakdown is None:
        return jsonify({"error": "Document not found"}), 404
    return jsonify(rec_service.breakdown_to_dict(breakdown))


@api_bp.get("/documents/<doc_id>/similar")
def document_similar(doc_id):
    ctx = rec_service.get_context()
    if ctx.store.get_document_detail(doc_id) is None:
        return jsonify({"error": "Document not found"}), 404
    results = ctx.engine.find_similar(doc_id, _limit("k", 10))
    return jsonify({"items": [{"id": other, "similarity": sim} for other, sim in results]})


@api_bp.post("/documents")
def add_document():
    ctx = rec_service.get_context()
    data = request.get_json(silent=True) or {}
    try:
        document = rec_service.document_from_payload(data, library_id=ctx.library_id)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    document = ctx.store.add_document(document)
    return jsonify({"document": rec_service.document_to_dict(document)}), 201


@api_bp.delete("/documents/<doc_id>")
def delete_document(doc_id):
    if not rec_service.get_context().store.remove_document(doc_id):
        return jsonify({"error": "Document not found"}), 404
    return jsonify({"ok": True})


@api_bp.post("/rank")
def rank():
    data = request.get_json(silent=True) or {}
    ids = data.get("ids")
    if not isinstance(ids, list):
        return jsonify({"error": "ids must be a list"}), 400
    ranking = rec_service.get_context().engine.rank([str(i) for i in ids])
    return jsonify({"items": [item.to_dict() for item in ranking]})


@api_bp.get("/for-you")
def for_you():
    ctx = rec_service.get_context()
    library_id = request.args.get("library_id") or ctx.library_id
    items = ctx.engine.for_you_from_library(library_id, _limit("limit", 10))
    return jsonify({"items": [{"id": r.document_id, "score": r.score, "reason": r.reason} for r in items]})


@api_bp.get("/search")
def search():
    query = (request.args.get("q") or "").strip()
    if not query:
        return jsonify({"error": "q is required"}), 400
    results = rec_service.get_context().similarity.search_by_text(query, _limit("k", 10))
    return jsonify({"items": [{"id": doc_id, "similarity": sim} for doc_id, sim in results]})


@api_bp.post("/signals")
def record_signal():
    ctx = rec_service.get_context()
    data = request.get_json(silent=True) or {}
    try:
        action = TrainingAction(data.get("action"))
    except ValueError:
        return jsonify({"error": f"unknown action: {data.get('action')}"}), 400
    document = ctx.store.get_document_detail(str(data.get("document_id") or ""))
    if document is None:
        return jsonify({"error": "Document not found"}), 404
    event = ctx.signals.record(document, action)
    if event is None:
        return jsonify({"event": None, "duplicate": True})
    return jsonify({"event": event.to_dict()}), 201


@api_bp.get("/signals")
def list_signals():
    events = rec_service.get_context().signals.recent_events(_limit("limit", 20))
    return jsonify({"events": [dict(e.to_dict(), summary=e.summary) for e in events]})


@api_bp.post("/signals/<event_id>/undo")
def undo_signal(event_id):
    try:
        event = rec_service.get_context().signals.undo(event_id)
    except UnknownEventError:
        return jsonify({"error": "event not found"}), 404
    return jsonify({"event": event.to_dict()})


@api_bp.post("/index/build")
def build_index():
    ctx = rec_service.get_context()
    data = request.get_json(silent=True) or {}
    library_ids = parse_list(data.get("library_ids")) or [ctx.library_id]
    count = ctx.engine.build_index(library_ids)
    return jsonify({"count": count, "library_ids": library_ids})


@api_bp.post("/libraries/<library_id>/group")
def group(library_id):
    data = request.get_json(silent=True) or {}
    candidates = data.get("candidate_ids")
    if not isinstance(candidates, list):
        return jsonify({"error": "candidate_ids must be a list"}), 400
    top_k = max(1, parse_int(data.get("top_k"), 10))
    ids = rec_service.get_context().engine.group_recommendations(library_id, [str(c) for c in candidates], top_k)
    return jsonify({"items": ids})


@api_bp.get("/settings")
def get_settings():
    settings = rec_service.get_context().settings.get()
    return jsonify({"settings": settings.to_flat()})


@api_bp.put("/settings")
def update_settings():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "expected a JSON object"}), 400
    settings = rec_service.get_context().settings.update_flat(data)
    return jsonify({"ok": True, "settings": settings.to_flat()})


@api_bp.post("/settings/preset")
def apply_preset():
    data = request.get_json(silent=True) or {}
    try:
        settings = rec_service.get_context().settings.apply_preset(data.get("name"))
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"ok": True, "settings": settings.to_flat()})


@api_bp.get("/profile")
def get_profile():
    ctx = rec_service.get_context()
    profile = ctx.profiles.get(ctx.library_id)
    return jsonify({"profile": rec_service.profile_summary(profile)})


@api_bp.post("/profile/bootstrap")
def bootstrap_profile():
    ctx = rec_service.get_context()
    seeded = ctx.cold_start.bootstrap(ctx.library_id)
    if seeded:
        ctx.engine.invalidate_cache()
    return jsonify({"seeded": seeded})


@api_bp.post("/profile/maintenance")
def profile_maintenance():
    return jsonify(rec_service.get_context().maintenance())


@api_bp.post("/muted")
def add_muted():
    data = request.get_json(silent=True) or {}
    value = str(data.get("value") or "").strip()
    mute_type = data.get("type")
    if not value or mute_type not in MUTE_TYPES:
        return jsonify({"error": "value and a type of author, venue or category are required"}), 400
    rec_service.get_context().store.add_muted(value, mute_type)
    return jsonify({"ok": True}), 201


@api_bp.post("/smart-searches")
def add_smart_search():
    data = request.get_json(silent=True) or {}
    query = str(data.get("query") or "").strip()
    if not query:
        return jsonify({"error": "query is required"}), 400
    rec_service.get_context().store.add_smart_search(query)
    return jsonify({"ok": True}), 201
