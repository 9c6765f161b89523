import base64
import io

import pytest
from PIL import Image

from library_app.modules.exceptions import InvalidInput
from library_app.modules.qr_generator import IDCardGenerator
from library_app.modules.student_manager import Person


def _person(number=1):
    return Person(id=number, student_id=f"025-{number:04d}", name="Ana Reyes",
                  course="BSIT", barcode=f"LIB-{number:04d}")


def test_card_png_contains_qr_and_caption():
    png = IDCardGenerator().card_png(_person())

    card = Image.open(io.BytesIO(png))
    assert card.format == "PNG"
    assert card.size[0] >= 320
    assert card.size[1] > card.size[0]


def test_card_base64_decodes_to_png():
    encoded = IDCardGenerator().card_base64(_person())

    assert base64.b64decode(encoded).startswith(b"\x89PNG")


def test_sheet_paginates_eight_cards_per_page():
    generator = IDCardGenerator()

    pages = generator.render_pages([_person(n) for n in range(1, 10)])
    pdf = generator.render_sheet([_person(n) for n in range(1, 4)])

    assert len(pages) == 2
    assert pages[0].size == generator.page_size
    assert pdf.startswith(b"%PDF")


def test_empty_inputs_are_rejected():
    generator = IDCardGenerator()

    with pytest.raises(InvalidInput):
        generator.generate_qr_image("")
    with pytest.raises(InvalidInput):
        generator.render_sheet([])
