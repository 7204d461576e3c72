# signflow/email_utils.py
import smtplib
from email.message import EmailMessage
import logging
from flask import current_app

logger = logging.getLogger(__name__)

def _send(msg: EmailMessage):
    config = current_app.config
    if not config.get("SMTP_ENABLED"):
        logger.info(f"SMTP desactive, mail non envoye a {msg['To']}: {msg['Subject']}")
        return
    try:
        with smtplib.SMTP(config["SMTP_HOST"], config["SMTP_PORT"]) as smtp:
            smtp.starttls()
            smtp.login(config["SMTP_USER"], config["SMTP_PASS"])
            smtp.send_message(msg)
        logger.info(f"Email envoye a {msg['To']}")
    except Exception as e:
        logger.error(f"Echec envoi email a {msg['To']}: {e}")
        raise

def _new_message(to_addr: str, subject: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = current_app.config["SMTP_USER"]
    msg["To"] = to_addr
    return msg

def send_signing_invite(recipient_name: str, recipient_email: str, envelope_title: str, signing_url: str):
    # invitation a signer avec le lien personnel du signataire
    msg = _new_message(recipient_email, f"Please sign: {envelope_title}")
    msg.set_content(
        f"Hi {recipient_name},\n\n"
        f"{envelope_title} is ready for your signature:\n{signing_url}\n\n"
        "This link is unique to you. Do not share it."
    )
    _send(msg)

def send_completion_notice(owner_email: str, owner_name: str, envelope_title: str,
                           signed_pdf_url: str = None, pdf_bytes: bytes = None):
    # notification au proprietaire, le pdf signe est joint s il existe
    msg = _new_message(owner_email, f"Signed: {envelope_title}")
    body = f"Hi {owner_name}, all parties have signed {envelope_title}."
    if signed_pdf_url:
        body += f"\n\nDownload the signed PDF: {signed_pdf_url}"
    msg.set_content(body)
    if pdf_bytes:
        msg.add_attachment(pdf_bytes, maintype="application", subtype="pdf", filename="signed.pdf")
    _send(msg)

def send_signed_pdf(to_addr: str, pdf_bytes: bytes, filename: str):
    # envoi du pdf signe par email
    msg = _new_message(to_addr, "Document signed")
    msg.set_content("Please find the signed document attached.")
    msg.add_attachment(pdf_bytes, maintype="application", subtype="pdf", filename=filename)
    _send(msg)
