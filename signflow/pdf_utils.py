# signflow/pdf_utils.py
import base64
import io
import logging
from dataclasses import dataclass

from PIL import Image
from PyPDF2 import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from .errors import SourceDecodeError
from .field_types import is_present
from .storage import fetch_bytes

logger = logging.getLogger(__name__)

FONT_NAME = "Helvetica"
FONT_ENCODING = "cp1252"
MIN_FONT_SIZE = 8
MAX_FONT_SIZE = 12
FONT_HEIGHT_RATIO = 0.55
TEXT_INSET = 2
LINE_SPACING = 1.2


@dataclass(frozen=True)
class Rect:
    """Rectangle absolu en points, origine en bas a gauche."""
    x: float
    y: float
    width: float
    height: float


def map_field(field, page_width: float, page_height: float) -> Rect:
    # fractions (origine haut gauche) -> points (origine bas gauche)
    # pas de bornage: les valeurs hors [0,1] debordent simplement de la page.
    # une page de taille <= 0 donne un resultat non defini.
    abs_width = field.width * page_width
    abs_height = field.height * page_height
    abs_x = field.x * page_width
    abs_y = page_height - (field.y * page_height) - abs_height
    return Rect(abs_x, abs_y, abs_width, abs_height)


def font_size_for(box_height: float) -> float:
    return max(MIN_FONT_SIZE, min(MAX_FONT_SIZE, box_height * FONT_HEIGHT_RATIO))


def decode_data_url(value: str) -> bytes:
    # "data:image/png;base64,...." -> octets de l image
    if value.startswith("data:"):
        if "," not in value:
            raise ValueError("data URL sans contenu")
        value = value.split(",", 1)[1]
    return base64.b64decode(value, validate=True)


class PageOverlay:
    """Calque reportlab de la taille d une page du PDF source.

    Les champs sont dessines sur le calque, qui est fusionne dans la page
    au moment de la serialisation. Le mode invariant de reportlab retire
    dates et identifiants du calque pour que deux executions identiques
    produisent le meme contenu.
    """

    def __init__(self, width: float, height: float):
        self.width = width
        self.height = height
        self._buffer = io.BytesIO()
        self.canvas = canvas.Canvas(self._buffer, pagesize=(width, height), invariant=1)

    def merge_into(self, page):
        self.canvas.save()
        self._buffer.seek(0)
        page.merge_page(PdfReader(self._buffer).pages[0])


def _draw_image(c, rect: Rect, value: str):
    image_bytes = decode_data_url(value)
    # la capture vient d un canvas: on relit l image quel que soit le type annonce
    image = Image.open(io.BytesIO(image_bytes))
    image.load()
    img_io = io.BytesIO()
    image.convert("RGBA").save(img_io, format="PNG")
    img_io.seek(0)
    # l image remplit exactement la boite, sans conserver les proportions
    c.drawImage(ImageReader(img_io), rect.x, rect.y, width=rect.width, height=rect.height, mask="auto")


def _draw_text(c, rect: Rect, text: str):
    # Helvetica standard = WinAnsi: un glyphe hors cp1252 leve UnicodeEncodeError
    text.encode(FONT_ENCODING)
    font_size = font_size_for(rect.height)
    max_width = rect.width - 2 * TEXT_INSET
    # le retour a la ligne est celui de reportlab, pas le notre
    lines = simpleSplit(text, FONT_NAME, font_size, max_width) or [text]
    text_x = rect.x + TEXT_INSET
    text_y = rect.y + (rect.height - font_size) / 2
    leading = font_size * LINE_SPACING

    # toutes les lignes sont preparees avant d ecrire quoi que ce soit sur le calque
    text_obj = c.beginText(text_x, text_y)
    text_obj.setFont(FONT_NAME, font_size, leading)
    text_obj.setFillColorRGB(0, 0, 0)
    for line in lines:
        text_obj.textLine(line)

    c.saveState()
    try:
        c.drawText(text_obj)
    finally:
        c.restoreState()


def render_field(overlay: PageOverlay, rect: Rect, field) -> bool:
    """Dessine un champ sur le calque de sa page.

    Retourne False si le champ a ete ignore suite a une erreur; l erreur
    est journalisee et ne remonte jamais, pour que le reste du document
    soit quand meme compose.
    """
    try:
        if field.type.is_image:
            _draw_image(overlay.canvas, rect, field.value)
        else:
            _draw_text(overlay.canvas, rect, str(field.value))
    except Exception as e:
        logger.warning(f"Champ {field.id} ({field.type.value}, page {field.page}) ignore: {e}")
        return False
    return True


def open_document(data: bytes) -> PdfReader:
    # les restrictions de chiffrement sont ignorees: on tente le mot de passe vide
    try:
        reader = PdfReader(io.BytesIO(data))
        if reader.is_encrypted and not reader.decrypt(""):
            raise SourceDecodeError("PDF chiffre avec un mot de passe utilisateur")
        # dechiffrement force ici pour que l erreur sorte au decodage, pas a la fusion
        for page in reader.pages:
            page.get_contents()
    except SourceDecodeError:
        raise
    except Exception as e:
        raise SourceDecodeError(f"PDF source illisible: {e}") from e
    return reader


def count_pages(data: bytes) -> int:
    return len(open_document(data).pages)


def compose_signed_pdf(location: str, fields, fetch=None) -> bytes:
    """Incruste les valeurs des champs dans le PDF stocke a `location`.

    `fields` est une suite de FieldSpec, traitee dans l ordre fourni.
    Leve SourceFetchError ou SourceDecodeError si le document source ne peut
    pas etre obtenu; toute autre erreur reste limitee au champ concerne.
    """
    if fetch is None:
        fetch = fetch_bytes

    source = fetch(location)
    reader = open_document(source)
    pages = reader.pages
    page_count = len(pages)

    overlays = {}
    rendered = 0
    for field in fields:
        if not is_present(field.value):
            logger.debug(f"Champ {field.id} vide, ignore")
            continue
        index = field.page - 1
        if index < 0 or index >= page_count:
            logger.info(f"Champ {field.id} sur la page {field.page} hors document ({page_count} pages), ignore")
            continue

        overlay = overlays.get(index)
        if overlay is None:
            mediabox = pages[index].mediabox
            overlay = overlays[index] = PageOverlay(float(mediabox.width), float(mediabox.height))
        rect = map_field(field, overlay.width, overlay.height)
        if render_field(overlay, rect, field):
            rendered += 1

    writer = PdfWriter()
    for i, page in enumerate(pages):
        if i in overlays:
            try:
                overlays[i].merge_into(page)
            except Exception as e:
                raise SourceDecodeError(f"Page {i + 1} du PDF source illisible: {e}") from e
        writer.add_page(page)

    output = io.BytesIO()
    writer.write(output)
    logger.info(f"PDF signe compose: {rendered} champ(s) sur {page_count} page(s)")
    return output.getvalue()
