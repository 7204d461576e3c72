"""
Signing Workflow

Sends envelopes, records recipient submissions and, once everyone has
signed, composes the signed PDF and distributes it.

A failed composition never blocks completion: the envelope is marked
completed and simply has no signed artifact.
"""

import logging
import time
from datetime import datetime, timezone

from flask import current_app

from . import db
from .email_utils import send_completion_notice, send_signed_pdf, send_signing_invite
from .errors import CompositeError, InvalidState, NotYourTurn
from .field_types import is_present
from .models import (
    Envelope,
    Field,
    RECIPIENT_SIGNED,
    ROUTING_SEQUENTIAL,
    STATUS_COMPLETED,
    STATUS_DRAFT,
    STATUS_SENT,
    record_audit,
)
from .pdf_utils import compose_signed_pdf
from .storage import save_pdf

logger = logging.getLogger(__name__)


def signing_url(recipient) -> str:
    return f"{current_app.config['FRONTEND_URL'].rstrip('/')}/sign/{recipient.token}"


def pending_recipients(envelope) -> list:
    return [r for r in envelope.recipients if r.status != RECIPIENT_SIGNED]


def current_order(envelope):
    """Lowest order group that still has someone pending, or None."""
    pending = pending_recipients(envelope)
    return min(r.order for r in pending) if pending else None


def recipients_to_invite(envelope) -> list:
    pending = pending_recipients(envelope)
    if envelope.routing == ROUTING_SEQUENTIAL and pending:
        step = current_order(envelope)
        return [r for r in pending if r.order == step]
    return pending


def invite_recipients(envelope, recipients) -> list:
    """Email signing links; returns the delivery errors instead of raising."""
    errors = []
    for recipient in recipients:
        try:
            send_signing_invite(
                recipient_name=recipient.name,
                recipient_email=recipient.email,
                envelope_title=envelope.title,
                signing_url=signing_url(recipient),
            )
        except Exception as e:
            logger.error(f"[send] Echec de l invitation de {recipient.email}: {e}")
            errors.append({"email": recipient.email, "error": str(e)})
    return errors


def send_envelope(envelope) -> dict:
    if envelope.status == STATUS_COMPLETED:
        raise InvalidState("Envelope is already completed")
    if not envelope.pdf_url:
        raise InvalidState("No PDF uploaded yet")
    if not envelope.recipients:
        raise InvalidState("No recipients added")

    # sur un renvoi, seuls les signataires en attente recoivent un mail
    errors = invite_recipients(envelope, recipients_to_invite(envelope))
    envelope.status = STATUS_SENT
    record_audit(envelope, "sent")
    db.session.commit()
    return {
        "ok": True,
        "status": envelope.status,
        "recipient_count": len(envelope.recipients),
        "email_errors": errors or None,
    }


def _collect_values(recipient, values) -> dict:
    own = {f.id: f for f in recipient.fields}
    collected = {}
    for item in values:
        try:
            field_id = int(item.get("field_id"))
        except (AttributeError, TypeError, ValueError):
            raise InvalidState("Each value needs a field_id")
        if field_id not in own:
            raise InvalidState(f"Field {field_id} does not belong to this recipient")
        value = item.get("value")
        if value is not None and not isinstance(value, str):
            value = str(value)
        collected[field_id] = value

    missing = [f.id for f in own.values() if f.required and not is_present(collected.get(f.id, f.value))]
    if missing:
        raise InvalidState(f"Required fields missing: {missing}")
    return collected


def submit_signature(recipient, values) -> bool:
    """
    Store a recipient's field values and mark them as signed.

    Returns True when this submission completed the envelope.
    """
    envelope = recipient.envelope
    if envelope is None or envelope.status == STATUS_DRAFT:
        raise InvalidState("Document not available for signing")
    if recipient.status == RECIPIENT_SIGNED:
        raise InvalidState("Already signed")
    if envelope.routing == ROUTING_SEQUENTIAL and recipient.order != current_order(envelope):
        raise NotYourTurn("Waiting for previous signers")

    collected = _collect_values(recipient, values)
    for field in recipient.fields:
        if field.id in collected:
            field.value = collected[field.id]
    recipient.status = RECIPIENT_SIGNED
    recipient.signed_at = datetime.now(timezone.utc)
    record_audit(envelope, f"signed by {recipient.email}")
    db.session.commit()

    pending = pending_recipients(envelope)
    if pending:
        # routage sequentiel: le groupe suivant est invite quand le groupe courant a fini
        if envelope.routing == ROUTING_SEQUENTIAL and not any(r.order == recipient.order for r in pending):
            invite_recipients(envelope, recipients_to_invite(envelope))
        return False

    if claim_completion(envelope):
        finalise_envelope(envelope)
    return True


def claim_completion(envelope) -> bool:
    # mise a jour conditionnelle: une seule requete gagne la composition
    claimed = (
        Envelope.query.filter_by(id=envelope.id, status=STATUS_SENT)
        .update({"status": STATUS_COMPLETED}, synchronize_session=False)
    )
    db.session.commit()
    db.session.refresh(envelope)
    return claimed == 1


def finalise_envelope(envelope) -> bool:
    """
    Compose, store and distribute the signed PDF.

    Returns False when the artifact could not be produced.
    """
    specs = [f.to_spec() for f in Field.query.filter_by(envelope_id=envelope.id).order_by(Field.id)]
    pdf_bytes = None
    try:
        pdf_bytes = compose_signed_pdf(envelope.pdf_key or envelope.pdf_url, specs)
    except CompositeError as e:
        logger.error(f"Enveloppe {envelope.id}: echec de la composition du PDF signe: {e}")
        record_audit(envelope, f"composite failed: {e}")
    else:
        try:
            url, key = save_pdf(f"envelopes/{envelope.id}/signed-{int(time.time() * 1000)}.pdf", pdf_bytes)
        except (OSError, ValueError) as e:
            # meme traitement qu un echec de composition: pas d artefact, la completion reste acquise
            logger.error(f"Enveloppe {envelope.id}: stockage du PDF signe impossible: {e}")
            record_audit(envelope, f"composite failed: storage error: {e}")
            pdf_bytes = None
        else:
            envelope.signed_pdf_url = url
            envelope.signed_pdf_key = key
            record_audit(envelope, "completed")
    db.session.commit()

    notify_completion(envelope, pdf_bytes)
    return pdf_bytes is not None


def notify_completion(envelope, pdf_bytes=None):
    try:
        send_completion_notice(
            owner_email=envelope.owner_email,
            owner_name=envelope.owner_name,
            envelope_title=envelope.title,
            signed_pdf_url=envelope.signed_pdf_url,
            pdf_bytes=pdf_bytes,
        )
    except Exception as e:
        logger.error(f"Enveloppe {envelope.id}: notification du proprietaire impossible: {e}")

    if not pdf_bytes:
        return
    # copie du pdf final a chaque signataire
    for email in sorted({r.email for r in envelope.recipients} - {envelope.owner_email}):
        try:
            send_signed_pdf(email, pdf_bytes, f"{envelope.title}.pdf")
        except Exception as e:
            logger.error(f"Enveloppe {envelope.id}: envoi du PDF signe a {email} impossible: {e}")
