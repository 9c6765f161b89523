"""
QR Generator Module - Library Attendance & Mail Service

Renders student library ID cards: a QR code of the student's scannable
code with the name, student ID and course printed below it. Cards can be
laid out on printable pages and returned as a PDF document.
"""

import qrcode
import io
import base64
from PIL import Image, ImageDraw, ImageFont
import logging
from typing import List, Optional

from library_app.modules.exceptions import InvalidInput
from library_app.modules.student_manager import Person


class IDCardGenerator:
    """
    Library ID card renderer.
    """

    def __init__(self, system_name: str = 'Library Management System'):
        """Initialize the generator with default QR settings."""
        self.logger = logging.getLogger(__name__)
        self.system_name = system_name

        self.default_settings = {
            'version': 1,
            'error_correction': qrcode.constants.ERROR_CORRECT_M,
            'box_size': 8,
            'border': 4,
            'fill_color': 'black',
            'back_color': 'white'
        }

        # 2 x 4 cards per A4 page at 150 dpi
        self.page_size = (1240, 1754)
        self.cards_per_row = 2
        self.cards_per_column = 4

    def _load_fonts(self):
        try:
            return ImageFont.truetype("DejaVuSans.ttf", 18), ImageFont.truetype("DejaVuSans.ttf", 14)
        except (IOError, OSError):
            return ImageFont.load_default(), ImageFont.load_default()

    def generate_qr_image(self, code: str) -> Image.Image:
        """
        Encode a scannable code as a QR image.

        Args:
            code (str): Barcode or student ID

        Returns:
            Image.Image: RGB QR image
        """
        if not code:
            raise InvalidInput('A code is required to generate a QR image')

        settings = self.default_settings
        qr = qrcode.QRCode(
            version=settings['version'],
            error_correction=settings['error_correction'],
            box_size=settings['box_size'],
            border=settings['border']
        )
        qr.add_data(code)
        qr.make(fit=True)

        img = qr.make_image(fill_color=settings['fill_color'], back_color=settings['back_color'])
        return img.get_image().convert('RGB') if hasattr(img, 'get_image') else img.convert('RGB')

    def generate_card(self, person: Person) -> Image.Image:
        """
        Render one ID card.

        Args:
            person (Person): Student to print

        Returns:
            Image.Image: QR code with the student caption underneath
        """
        qr_img = self.generate_qr_image(person.barcode or person.student_id)

        width = max(qr_img.size[0], 320)
        card = Image.new('RGB', (width, qr_img.size[1] + 110), 'white')
        card.paste(qr_img, ((width - qr_img.size[0]) // 2, 0))

        draw = ImageDraw.Draw(card)
        font_large, font_small = self._load_fonts()

        lines = [
            (person.name, font_large),
            (person.student_id, font_small),
            (person.course, font_small),
            (self.system_name, font_small),
        ]

        text_y = qr_img.size[1] + 4
        for text, font in lines:
            if not text:
                continue
            bbox = draw.textbbox((0, 0), text, font=font)
            draw.text(((width - (bbox[2] - bbox[0])) // 2, text_y), text, fill='black', font=font)
            text_y += (bbox[3] - bbox[1]) + 10

        draw.rectangle([(0, 0), (width - 1, card.size[1] - 1)], outline='black')
        return card

    def card_png(self, person: Person) -> bytes:
        """Render one ID card as PNG bytes."""
        buffer = io.BytesIO()
        self.generate_card(person).save(buffer, format='PNG')
        return buffer.getvalue()

    def card_base64(self, person: Person) -> str:
        """Render one ID card as a base64 PNG string."""
        return base64.b64encode(self.card_png(person)).decode()

    def render_pages(self, people: List[Person]) -> List[Image.Image]:
        """
        Lay ID cards out on printable pages.

        Args:
            people (List[Person]): Students to print, in order

        Returns:
            List[Image.Image]: One image per page
        """
        if not people:
            raise InvalidInput('No students selected for printing')

        per_page = self.cards_per_row * self.cards_per_column
        cell_w = self.page_size[0] // self.cards_per_row
        cell_h = self.page_size[1] // self.cards_per_column

        pages: List[Image.Image] = []
        page: Optional[Image.Image] = None

        for index, person in enumerate(people):
            if index % per_page == 0:
                page = Image.new('RGB', self.page_size, 'white')
                pages.append(page)

            card = self.generate_card(person)
            card.thumbnail((cell_w - 20, cell_h - 20))

            slot = index % per_page
            row, col = divmod(slot, self.cards_per_row)
            x = col * cell_w + (cell_w - card.size[0]) // 2
            y = row * cell_h + (cell_h - card.size[1]) // 2
            page.paste(card, (x, y))

        self.logger.info(f"Rendered {len(people)} ID cards on {len(pages)} page(s)")
        return pages

    def render_sheet(self, people: List[Person]) -> bytes:
        """
        Render ID cards as a printable PDF document.

        Returns:
            bytes: PDF with one or more pages of cards
        """
        pages = self.render_pages(people)
        buffer = io.BytesIO()
        pages[0].save(buffer, format='PDF', save_all=True, append_images=pages[1:], resolution=150)
        return buffer.getvalue()
