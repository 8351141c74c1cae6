import logging
from io import BytesIO
import barcode
from barcode.writer import ImageWriter, SVGWriter

logger = logging.getLogger(__name__)

WRITER_OPTIONS = {
    'module_width': 0.3,
    'module_height': 10,
    'font_size': 10,
    'text_distance': 3,
    'quiet_zone': 5
}


def po_barcode_png(po_number, barcode_type='code128'):
    """
    Render a PO number as a PNG barcode for printed bin cards

    Returns:
        BytesIO positioned at 0, or None if the code cannot be encoded
    """
    try:
        barcode_class = barcode.get_barcode_class(barcode_type)
        bc = barcode_class(po_number, writer=ImageWriter())

        buffer = BytesIO()
        bc.write(buffer, options=WRITER_OPTIONS)
        buffer.seek(0)
        return buffer

    except Exception as e:
        logger.warning('Could not render barcode for %s: %s', po_number, e)
        return None


def po_barcode_svg(po_number, barcode_type='code128'):
    """SVG barcode markup for the bin card screen"""
    try:
        barcode_class = barcode.get_barcode_class(barcode_type)
        bc = barcode_class(po_number, writer=SVGWriter())

        buffer = BytesIO()
        bc.write(buffer)
        return buffer.getvalue().decode('utf-8')

    except Exception as e:
        logger.warning('Could not render SVG barcode for %s: %s', po_number, e)
        return None
