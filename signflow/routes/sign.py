# signflow/routes/sign.py
from flask import Blueprint, request, jsonify
from ..completion import submit_signature
from ..errors import InvalidState, NotFound
from ..models import Recipient, STATUS_DRAFT

sign_bp = Blueprint("sign", __name__)

def _get_recipient(token):
    recipient = Recipient.query.filter_by(token=token).first()
    if recipient is None:
        raise NotFound("Invalid signing link")
    if recipient.envelope is None:
        raise NotFound("Envelope not found")
    return recipient

@sign_bp.route("/<token>", methods=["GET"])
def sign_page(token):
    # donnees de la page de signature pour un signataire
    recipient = _get_recipient(token)
    envelope = recipient.envelope
    if envelope.status == STATUS_DRAFT:
        raise InvalidState("Document has not been sent yet")
    return jsonify({
        "envelope": {
            "id": envelope.id,
            "title": envelope.title,
            "pdf_url": envelope.pdf_url,
            "page_count": envelope.page_count,
            "routing": envelope.routing,
        },
        "recipient": recipient.to_dict(),
        "fields": [f.to_dict() for f in recipient.fields],
    })

@sign_bp.route("/<token>", methods=["POST"])
def submit_sign(token):
    # reception des valeurs saisies par un signataire
    recipient = _get_recipient(token)
    values = (request.get_json(silent=True) or {}).get("values")
    if not isinstance(values, list):
        raise InvalidState("values must be an array")
    all_signed = submit_signature(recipient, values)
    return jsonify({"ok": True, "all_signed": all_signed})
