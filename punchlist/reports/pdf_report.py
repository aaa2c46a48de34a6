import io
import logging
from datetime import date
from typing import List, Mapping, Optional, Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.utils import ImageReader
from reportlab.platypus import (
    Image,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from punchlist.models import ALL_CATEGORIES, PunchlistItem

logger = logging.getLogger(__name__)

THUMBNAIL_SIZE = 60
COLUMN_WIDTHS = [70, 120, 250, THUMBNAIL_SIZE + 12]
HEADER = ["Room", "Category", "Description", "Photo"]


def filter_items(items: Sequence[PunchlistItem], category_filter: str = ALL_CATEGORIES) -> List[PunchlistItem]:
    if not category_filter or category_filter == ALL_CATEGORIES:
        return list(items)
    return [i for i in items if i.category == category_filter]


def report_filename(category_filter: str = ALL_CATEGORIES, on: Optional[date] = None) -> str:
    label = (category_filter or ALL_CATEGORIES).lower()
    label = "".join(c if c.isalnum() else "_" for c in label).strip("_")
    return f"punchlist_{label}_{(on or date.today()).isoformat()}.pdf"


def _thumbnail(data: bytes) -> Image:
    reader = ImageReader(io.BytesIO(data))
    width, height = reader.getSize()
    scale = THUMBNAIL_SIZE / float(max(width, height))
    return Image(io.BytesIO(data), width=width * scale, height=height * scale)


def render_punchlist_pdf(
    items: Sequence[PunchlistItem],
    job_name: str,
    category_filter: str = ALL_CATEGORIES,
    photos: Optional[Mapping[str, bytes]] = None,
    generated_on: Optional[date] = None,
) -> bytes:
    """
    Render a job's punchlist as a paginated A4 table.

    photos maps item ids to image bytes. Items without resolvable photo bytes
    get an empty photo cell; rows that fail to render are logged and left out.
    """
    photos = photos or {}
    selected = filter_items(items, category_filter)

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "Title",
        parent=styles["Heading1"],
        alignment=TA_LEFT,
        spaceAfter=6,
    )
    cell_style = ParagraphStyle("Cell", parent=styles["Normal"], fontSize=9, leading=11)
    body_style = styles["Normal"]

    story: list = []
    story.append(
        Paragraph(
            f"Punchlist Report - {escape(job_name)} ({escape(category_filter or ALL_CATEGORIES)})",
            title_style,
        )
    )
    story.append(
        Paragraph(
            f"Generated on: {(generated_on or date.today()).strftime('%Y-%m-%d')}",
            body_style,
        )
    )
    story.append(Spacer(1, 12))

    rows: list = [HEADER]
    for item in selected:
        try:
            photo_cell = ""
            data = photos.get(item.id)
            if data:
                try:
                    photo_cell = _thumbnail(data)
                except Exception as e:
                    logger.warning("Error adding image for item %s to PDF: %s", item.id, e)

            rows.append(
                [
                    Paragraph(escape(item.room), cell_style),
                    Paragraph(escape(item.category), cell_style),
                    Paragraph(escape(item.description), cell_style),
                    photo_cell,
                ]
            )
        except Exception as e:
            logger.warning("Skipping item %s in PDF: %s", item.id, e)

    if len(rows) == 1:
        story.append(Paragraph("No items found.", body_style))
    else:
        table = Table(rows, colWidths=COLUMN_WIDTHS, repeatRows=1)
        table.setStyle(
            TableStyle(
                [
                    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                    ("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke),
                    ("FONT", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ]
            )
        )
        story.append(table)

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=36,
        leftMargin=36,
        topMargin=36,
        bottomMargin=36,
        title=f"Punchlist Report - {job_name}",
    )
    doc.build(story)
    return buffer.getvalue()
