# signflow/field_types.py
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FieldType(str, Enum):
    SIGNATURE = "signature"
    INITIALS = "initials"
    NAME = "name"
    EMAIL = "email"
    DATE = "date"
    TEXT = "text"

    @property
    def is_image(self) -> bool:
        # signature et initiales sont capturees sur un canvas -> image
        return self in (FieldType.SIGNATURE, FieldType.INITIALS)


FIELD_TYPES = [t.value for t in FieldType]


@dataclass(frozen=True)
class FieldSpec:
    """Champ positionne tel que fourni au compositeur.

    x, y, width, height sont des fractions de la page rendue,
    origine en haut a gauche, y vers le bas. Aucune borne n est imposee.
    """
    page: int
    x: float
    y: float
    width: float
    height: float
    type: FieldType
    value: Optional[str] = None
    id: Optional[object] = None

    @classmethod
    def from_dict(cls, data: dict) -> "FieldSpec":
        return cls(
            page=int(data.get("page", 1)),
            x=float(data["x"]),
            y=float(data["y"]),
            width=float(data["width"]),
            height=float(data["height"]),
            type=FieldType(data["type"]),
            value=data.get("value"),
            id=data.get("id"),
        )


def is_present(value) -> bool:
    # "0" est une valeur remplie, seuls None et "" comptent comme vides
    return value is not None and value != ""
