# signflow/routes/envelopes.py
import time
import uuid
from numbers import Real
from flask import Blueprint, request, current_app, jsonify
from .. import db
from ..completion import send_envelope, signing_url
from ..errors import InvalidState, NotFound, SourceDecodeError
from ..field_types import FIELD_TYPES
from ..models import Audit, Envelope, Field, Recipient, ROUTINGS, ROUTING_PARALLEL, STATUS_COMPLETED, STATUS_DRAFT
from ..pdf_utils import count_pages
from ..storage import delete_pdf, save_pdf

envelopes_bp = Blueprint("envelopes", __name__)

def _get_envelope(envelope_id):
    envelope = db.session.get(Envelope, envelope_id)
    if envelope is None:
        raise NotFound("Not found")
    return envelope

def _require_draft(envelope):
    if envelope.status != STATUS_DRAFT:
        raise InvalidState("Only draft envelopes can be edited")

def _json_body():
    return request.get_json(silent=True) or {}

@envelopes_bp.route("/", methods=["GET"])
def list_envelopes():
    query = Envelope.query
    owner_email = request.args.get("owner_email")
    if owner_email:
        query = query.filter_by(owner_email=owner_email.lower().strip())
    envelopes = query.order_by(Envelope.created_at.desc(), Envelope.id.desc()).all()
    return jsonify([e.to_dict() for e in envelopes])

@envelopes_bp.route("/", methods=["POST"])
def create_envelope():
    data = _json_body()
    title = (data.get("title") or "").strip()
    owner_name = (data.get("owner_name") or "").strip()
    owner_email = (data.get("owner_email") or "").lower().strip()
    routing = data.get("routing") or ROUTING_PARALLEL
    if not title:
        raise InvalidState("title is required")
    if not owner_name or not owner_email:
        raise InvalidState("owner_name and owner_email are required")
    if routing not in ROUTINGS:
        raise InvalidState(f"routing must be one of {', '.join(ROUTINGS)}")
    envelope = Envelope(title=title, owner_name=owner_name, owner_email=owner_email, routing=routing)
    db.session.add(envelope)
    db.session.commit()
    return jsonify(envelope.to_dict()), 201

@envelopes_bp.route("/<int:envelope_id>", methods=["GET"])
def get_envelope(envelope_id):
    envelope = _get_envelope(envelope_id)
    return jsonify({
        "envelope": envelope.to_dict(),
        "recipients": [r.to_dict() for r in envelope.recipients],
        "fields": [f.to_dict() for f in envelope.fields],
    })

@envelopes_bp.route("/<int:envelope_id>", methods=["PATCH"])
def update_envelope(envelope_id):
    # mise a jour legere: titre et nombre de pages declare
    envelope = _get_envelope(envelope_id)
    data = _json_body()
    if data.get("page_count") is not None:
        try:
            n = int(data["page_count"])
        except (TypeError, ValueError):
            n = 0
        if n > 0:
            envelope.page_count = n
    if isinstance(data.get("title"), str) and data["title"].strip():
        envelope.title = data["title"].strip()
    db.session.commit()
    return jsonify(envelope.to_dict())

@envelopes_bp.route("/<int:envelope_id>", methods=["DELETE"])
def delete_envelope(envelope_id):
    envelope = _get_envelope(envelope_id)
    if envelope.status != STATUS_DRAFT:
        raise InvalidState("Only draft envelopes can be deleted")
    delete_pdf(envelope.pdf_key)
    for model in (Audit, Field, Recipient):
        model.query.filter_by(envelope_id=envelope.id).delete()
    db.session.delete(envelope)
    db.session.commit()
    return jsonify({"ok": True})

@envelopes_bp.route("/<int:envelope_id>/upload", methods=["POST"])
def upload_pdf(envelope_id):
    # route pour l upload du pdf
    envelope = _get_envelope(envelope_id)
    _require_draft(envelope)
    f = request.files.get("pdf")
    if not f or not f.filename.lower().endswith(".pdf"):
        return jsonify({"error": "PDF required"}), 400
    content = f.read()
    if len(content) > current_app.config["MAX_PDF_SIZE_MB"] * 1024**2:
        return jsonify({"error": "PDF too large"}), 413
    try:
        page_count = count_pages(content)
    except SourceDecodeError:
        return jsonify({"error": "Invalid PDF"}), 400

    previous_key = envelope.pdf_key
    url, key = save_pdf(f"envelopes/{envelope.id}/{int(time.time() * 1000)}.pdf", content)
    envelope.pdf_url = url
    envelope.pdf_key = key
    envelope.page_count = page_count
    db.session.commit()
    if previous_key and previous_key != key:
        delete_pdf(previous_key)
    return jsonify({"pdf_url": url, "pdf_key": key, "page_count": page_count})

@envelopes_bp.route("/<int:envelope_id>/recipients", methods=["PUT"])
def replace_recipients(envelope_id):
    envelope = _get_envelope(envelope_id)
    _require_draft(envelope)
    recipients = _json_body().get("recipients")
    if not isinstance(recipients, list):
        raise InvalidState("recipients must be an array")
    for r in recipients:
        if not isinstance(r, dict) or not r.get("name") or not r.get("email"):
            raise InvalidState("Each recipient needs a name and an email")
        if r.get("order") is not None and (not isinstance(r["order"], int) or isinstance(r["order"], bool)):
            raise InvalidState("order must be an integer")

    # les champs pointent sur les anciens signataires: on les retire aussi
    Field.query.filter_by(envelope_id=envelope.id).delete()
    Recipient.query.filter_by(envelope_id=envelope.id).delete()
    created = []
    for i, r in enumerate(recipients):
        order = r.get("order")
        recipient = Recipient(
            envelope_id=envelope.id,
            name=r["name"].strip(),
            email=r["email"].lower().strip(),
            order=order if order is not None else i,
            token=uuid.uuid4().hex,
        )
        db.session.add(recipient)
        created.append(recipient)
    db.session.commit()
    return jsonify([r.to_dict() for r in created])

def _validate_field(f, recipient_ids):
    if not isinstance(f, dict):
        raise InvalidState("Each field must be an object")
    if f.get("type") not in FIELD_TYPES:
        raise InvalidState(f"type must be one of {', '.join(FIELD_TYPES)}")
    if f.get("recipient_id") not in recipient_ids:
        raise InvalidState("recipient_id does not belong to this envelope")
    page = f.get("page", 1)
    if not isinstance(page, int) or isinstance(page, bool) or page < 1:
        raise InvalidState("page must be an integer >= 1")
    for key in ("x", "y", "width", "height"):
        if not isinstance(f.get(key), Real) or isinstance(f.get(key), bool):
            raise InvalidState(f"{key} must be a number")

@envelopes_bp.route("/<int:envelope_id>/fields", methods=["PUT"])
def replace_fields(envelope_id):
    envelope = _get_envelope(envelope_id)
    _require_draft(envelope)
    fields = _json_body().get("fields")
    if not isinstance(fields, list):
        raise InvalidState("fields must be an array")
    recipient_ids = {r.id for r in envelope.recipients}
    for f in fields:
        _validate_field(f, recipient_ids)

    Field.query.filter_by(envelope_id=envelope.id).delete()
    created = []
    for f in fields:
        field = Field(
            envelope_id=envelope.id,
            recipient_id=f["recipient_id"],
            page=f.get("page", 1),
            x=float(f["x"]),
            y=float(f["y"]),
            width=float(f["width"]),
            height=float(f["height"]),
            type=f["type"],
            required=bool(f.get("required", True)),
        )
        db.session.add(field)
        created.append(field)
    db.session.commit()
    return jsonify([f.to_dict() for f in created])

@envelopes_bp.route("/<int:envelope_id>/send", methods=["POST"])
def send(envelope_id):
    envelope = _get_envelope(envelope_id)
    return jsonify(send_envelope(envelope))

# liens de signature par signataire, pour un partage manuel sans email
@envelopes_bp.route("/<int:envelope_id>/links", methods=["GET"])
def links(envelope_id):
    envelope = _get_envelope(envelope_id)
    if envelope.status == STATUS_DRAFT:
        raise InvalidState("Document has not been sent yet")
    return jsonify({"links": [
        {
            "recipient_id": r.id,
            "name": r.name,
            "email": r.email,
            "status": r.status,
            "signing_url": signing_url(r),
        }
        for r in envelope.recipients
    ]})

@envelopes_bp.route("/<int:envelope_id>/download", methods=["GET"])
def download(envelope_id):
    envelope = _get_envelope(envelope_id)
    if envelope.status != STATUS_COMPLETED:
        raise InvalidState("Document is not yet complete")
    if not envelope.signed_pdf_url:
        raise NotFound("Signed PDF not available")
    return jsonify({"signed_pdf_url": envelope.signed_pdf_url})
