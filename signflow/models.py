# signflow/models.py
from . import db
from .field_types import FieldSpec, FieldType

STATUS_DRAFT = "draft"
STATUS_SENT = "sent"
STATUS_COMPLETED = "completed"

ROUTING_PARALLEL = "parallel"
ROUTING_SEQUENTIAL = "sequential"
ROUTINGS = (ROUTING_PARALLEL, ROUTING_SEQUENTIAL)

RECIPIENT_PENDING = "pending"
RECIPIENT_SIGNED = "signed"


# enveloppe: un pdf, ses signataires et ses champs
class Envelope(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(256), nullable=False)
    owner_name = db.Column(db.String(128), nullable=False)
    owner_email = db.Column(db.String(128), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=STATUS_DRAFT)
    routing = db.Column(db.String(16), nullable=False, default=ROUTING_PARALLEL)
    pdf_url = db.Column(db.String(512))
    pdf_key = db.Column(db.String(256))
    page_count = db.Column(db.Integer, nullable=False, default=1)
    signed_pdf_url = db.Column(db.String(512))
    signed_pdf_key = db.Column(db.String(256))
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now())

    recipients = db.relationship("Recipient", backref="envelope", order_by="Recipient.order",
                                 cascade="all, delete")
    fields = db.relationship("Field", backref="envelope", order_by="Field.id",
                             cascade="all, delete")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "owner_name": self.owner_name,
            "owner_email": self.owner_email,
            "status": self.status,
            "routing": self.routing,
            "pdf_url": self.pdf_url,
            "page_count": self.page_count,
            "signed_pdf_url": self.signed_pdf_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# modele pour un signataire
class Recipient(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    envelope_id = db.Column(db.Integer, db.ForeignKey("envelope.id"), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(128), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)
    token = db.Column(db.String(64), nullable=False, unique=True)
    status = db.Column(db.String(16), nullable=False, default=RECIPIENT_PENDING)
    signed_at = db.Column(db.DateTime)

    fields = db.relationship("Field", order_by="Field.id", viewonly=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "order": self.order,
            "status": self.status,
            "signed_at": self.signed_at.isoformat() if self.signed_at else None,
        }


# champ place sur le pdf, coordonnees en fractions de la page
class Field(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    envelope_id = db.Column(db.Integer, db.ForeignKey("envelope.id"), nullable=False)
    recipient_id = db.Column(db.Integer, db.ForeignKey("recipient.id"), nullable=False)
    page = db.Column(db.Integer, nullable=False, default=1)
    x = db.Column(db.Float, nullable=False)
    y = db.Column(db.Float, nullable=False)
    width = db.Column(db.Float, nullable=False)
    height = db.Column(db.Float, nullable=False)
    type = db.Column(db.String(16), nullable=False)
    required = db.Column(db.Boolean, nullable=False, default=True)
    value = db.Column(db.Text)

    def to_spec(self) -> FieldSpec:
        return FieldSpec(
            page=self.page,
            x=self.x,
            y=self.y,
            width=self.width,
            height=self.height,
            type=FieldType(self.type),
            value=self.value,
            id=self.id,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "page": self.page,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "type": self.type,
            "required": self.required,
            "value": self.value,
        }


# modele pour audit des actions
class Audit(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    envelope_id = db.Column(db.Integer, db.ForeignKey("envelope.id"))
    action = db.Column(db.String(256), nullable=False)
    timestamp = db.Column(db.DateTime, server_default=db.func.now())


def record_audit(envelope, action: str):
    db.session.add(Audit(envelope_id=envelope.id if envelope else None, action=action[:256]))
