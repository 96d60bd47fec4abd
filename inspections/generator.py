# generator.py - printable inspection certificate (reportlab)
import logging
import os
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, Table, TableStyle

logger = logging.getLogger(__name__)

BOTTOM_MARGIN = 50
ITEM_COLUMNS = [0.6 * inch, 2.9 * inch, 0.8 * inch, 0.9 * inch, 0.9 * inch, 0.9 * inch]


def _text(value, default=''):
    if value is None or value == '':
        return default
    return str(value)


def _joined(values, limit=3):
    values = [value for value in dict.fromkeys(values) if value]
    shown = ', '.join(values[:limit])
    if len(values) > limit:
        shown += ', ...'
    return shown


class InspectionCertificatePdf:
    """
    Renders a completed certificate on the purchase section's inspection form.

    Sections follow the paper form: header and delivery details, stores
    table, consignee certification with stock register references, central
    store register entry and the finance check.
    """

    def __init__(self, certificate, logo_path=None, institution_name='', section_name=''):
        self.certificate = certificate
        self.items = list(certificate.inspection_items.select_related('linked_item'))
        self.logo_path = logo_path
        self.institution_name = institution_name
        self.section_name = section_name
        self.width, self.height = letter
        self.normal = getSampleStyleSheet()['Normal']

    def render(self):
        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=letter)
        c.setTitle(f"Inspection Certificate {self.certificate.certificate_no}")
        self.draw_header(c)
        self.draw_logo(c)
        self.draw_delivery_section(c)
        y = self.draw_item_table(c)
        y = self.draw_consignee_section(c, y)
        y = self.draw_central_store_section(c, y)
        self.draw_finance_section(c, y)
        c.save()

        pdf = buffer.getvalue()
        logger.info(
            "Rendered PDF for %s (%d items, %d bytes)",
            self.certificate.certificate_no, len(self.items), len(pdf)
        )
        return pdf

    # ---------- layout helpers ----------
    def ensure_space(self, c, y, needed):
        if y - needed < BOTTOM_MARGIN:
            c.showPage()
            self.draw_page_mark(c)
            return self.height - 50
        return y

    def draw_page_mark(self, c):
        c.setFont("Helvetica-Bold", 10)
        c.drawString(self.width - 163, self.height - 17, self.certificate.certificate_no)

    def draw_logo(self, c):
        if not self.logo_path:
            return
        if not os.path.exists(self.logo_path):
            logger.warning("PDF logo not found at %s", self.logo_path)
            return
        c.drawImage(self.logo_path, x=45, y=self.height - 100, width=inch, height=inch,
                    preserveAspectRatio=True, mask='auto')

    def draw_paged_table(self, c, rows, col_widths, x, y, style):
        """Draw `rows` (first row is the header), repeating the header on each new page."""
        header, body = rows[0], rows[1:]
        chunk = [header]
        for row in body:
            table = Table(chunk + [row], colWidths=col_widths)
            table.setStyle(style)
            _, height = table.wrap(self.width, self.height)
            if y - height < BOTTOM_MARGIN and len(chunk) > 1:
                table = Table(chunk, colWidths=col_widths)
                table.setStyle(style)
                _, chunk_height = table.wrap(self.width, self.height)
                table.drawOn(c, x, y - chunk_height)
                c.showPage()
                self.draw_page_mark(c)
                y = self.height - 50
                chunk = [header, row]
            else:
                chunk.append(row)

        table = Table(chunk, colWidths=col_widths)
        table.setStyle(style)
        _, chunk_height = table.wrap(self.width, self.height)
        table.drawOn(c, x, y - chunk_height)
        return y - chunk_height

    # ---------- sections ----------
    def draw_header(self, c):
        cert = self.certificate
        self.draw_page_mark(c)

        c.setFont("Helvetica-Bold", 12)
        if self.institution_name:
            c.drawCentredString(self.width / 2, self.height - 68, self.institution_name)
        if self.section_name:
            c.drawCentredString(self.width / 2, self.height - 88, self.section_name)

        c.setFont("Helvetica-Bold", 14)
        c.drawCentredString(self.width / 2, self.height - 109, "INSPECTION CERTIFICATE")
        title_width = c.stringWidth("INSPECTION CERTIFICATE", "Helvetica-Bold", 14)
        c.setLineWidth(1)
        c.line((self.width - title_width) / 2, self.height - 111,
               (self.width + title_width) / 2, self.height - 111)

        c.setFont("Helvetica", 9)
        c.drawCentredString(
            self.width / 2, self.height - 124,
            f"Certificate No: {cert.certificate_no}    Workflow: {cert.get_workflow_type_display()}"
        )

    def draw_delivery_section(self, c):
        cert = self.certificate
        contractor = f"{_text(cert.contractor_name, 'N/A')}, {_text(cert.contractor_address, 'N/A')}"
        if len(contractor) > 80:
            contractor = contractor[:80] + "..."

        lines = [
            (f"1. Contract No: {_text(cert.contract_no, 'N/A')}",
             f"Date: {_text(cert.contract_date or cert.date)}"),
            (f"2. Contractor's Name and address: {contractor}", ''),
            (f"3. Indenter: {_text(cert.indenter, 'N/A')}",
             f"4. Indent No: {_text(cert.indent_no, 'N/A')}"),
            (f"5. Consignee: {_text(cert.consignee_name, 'N/A')}",
             f"6. Department: {cert.department.name}"),
            (f"7. Date of Delivery: {_text(cert.date_of_delivery)}",
             f"8. Delivery in part or full: {cert.get_delivery_type_display()}"),
        ]

        c.setFont("Helvetica", 11)
        y = self.height - 152
        for left, right in lines:
            c.drawString(50, y, left)
            if right:
                c.drawString(self.width / 2 + 40, y, right)
            y -= 18
        c.drawString(50, y, "9. Details of Stores delivered.")

    def draw_item_table(self, c):
        rows = [[
            "Item No.", "DESCRIPTION OF STORES", "Acct. Unit",
            "Tendered\n(Quantity)", "Rejected\n(Quantity)", "Accepted\n(Quantity)"
        ]]
        for number, line in enumerate(self.items, 1):
            description = escape(line.item_description)
            if line.linked_item_id:
                description += f" [{escape(line.linked_item.code)}]"
            if line.specifications:
                description += f"<br/>Specs: {escape(line.specifications)}"
            if line.remarks:
                description += f"<br/>Remarks: {escape(line.remarks)}"
            unit = line.unit or (line.linked_item.acct_unit if line.linked_item_id else '')
            rows.append([
                str(number),
                Paragraph(description, self.normal),
                unit or 'N/A',
                str(line.tendered_quantity),
                str(line.rejected_quantity),
                str(line.accepted_quantity),
            ])

        y = self.height - 260
        if len(rows) == 1:
            c.setFont("Helvetica", 10)
            c.drawString(40, y, "No items in this inspection certificate.")
            return y - 30

        style = TableStyle([
            ("GRID", (0, 0), (-1, -1), 1, colors.black),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("ALIGN", (0, 0), (0, -1), "CENTER"),
            ("ALIGN", (2, 1), (-1, -1), "CENTER"),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
        ])
        self.draw_paged_table(c, rows, ITEM_COLUMNS, 40, y, style)

        # Certification sections start on a fresh page, as on the paper form
        c.showPage()
        self.draw_page_mark(c)
        return self.height - 50

    def draw_rejection_table(self, c, y):
        rows = [["ITEM No", "REASONS FOR REJECTION"]]
        for number, line in enumerate(self.items, 1):
            if line.rejected_quantity:
                reason = line.remarks or "Not meeting specifications"
                rows.append([str(number), Paragraph(escape(reason), self.normal)])

        if len(rows) == 1:
            c.setFont("Helvetica", 10)
            c.drawString(85, y - 20, "No items rejected.")
            return y - 40

        style = TableStyle([
            ("GRID", (0, 0), (-1, -1), 1, colors.black),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("ALIGN", (0, 0), (-1, 0), "CENTER"),
            ("ALIGN", (0, 1), (0, -1), "CENTER"),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
        ])
        y = self.draw_paged_table(c, rows, [1 * inch, 455], 85, y - 6, style)
        return y - 20

    def draw_consignee_section(self, c, y):
        cert = self.certificate
        y = self.ensure_space(c, y, 74)
        c.setFont("Helvetica-Bold", 12)
        c.drawString(50, y - 20, "10. Consignee / Indentor:")

        c.setFont("Helvetica", 11)
        c.drawString(70, y - 36, f"a) Date of Inspection: {_text(cert.date_of_inspection)}")
        c.drawString(70, y - 52, "b) Certified that the stores listed under para 9 have been received in good")
        c.drawString(85, y - 65, "condition and according to the Contract Order, except the following:")
        y = self.draw_rejection_table(c, y - 65)

        y = self.ensure_space(c, y, 190)
        registers = _joined(line.stock_register_no for line in self.items)
        pages = _joined(line.stock_register_page_no for line in self.items)
        entry_dates = _joined(_text(line.stock_entry_date) for line in self.items)
        c.drawString(50, y, f"c) Entered in Stock Register No: {registers}")
        c.drawString(50, y - 18, f"Page No(s): {pages}")
        c.drawString(50, y - 36, f"d) Date of Entry: {entry_dates}")

        c.drawString(self.width - 242, y - 60, "Consignee's Signature _____________")
        c.drawString(self.width - 242, y - 78, f"Name: {_text(cert.consignee_name)}")
        c.drawString(self.width - 242, y - 96, f"Designation: {_text(cert.consignee_designation)}")

        c.drawString(50, y - 126, "___________________")
        c.drawString(50, y - 144, "Countersignature by")
        c.drawString(50, y - 158, "Chairman / Head of the Department")

        c.setLineWidth(3)
        c.line(50, y - 174, self.width - 30, y - 174)
        return y - 174

    def draw_central_store_section(self, c, y):
        y = self.ensure_space(c, y, 160)
        registers = _joined(line.central_register_no for line in self.items)
        pages = _joined(line.central_register_page_no for line in self.items)

        c.setFont("Helvetica-Bold", 11)
        c.drawString(50, y - 14, "11. Central Store:")
        c.setFont("Helvetica", 11)
        c.drawString(70, y - 34, f"a) Registered in the Central Dead Stock Register No: {registers}")
        c.drawString(85, y - 54, f"Page No(s): {pages}")
        c.drawString(70, y - 74, f"b) Date of Entry: {_text(self.certificate.central_store_entry_date)}")

        c.setFont("Helvetica-Bold", 11)
        c.drawString(self.width - 189, y - 120, "____________________")
        c.drawString(self.width - 189, y - 134, "Manager Central Store")

        c.setLineWidth(3)
        c.line(50, y - 150, self.width - 30, y - 150)
        return y - 150

    def draw_finance_section(self, c, y):
        y = self.ensure_space(c, y, 110)
        c.setFont("Helvetica-Bold", 12)
        c.drawString(50, y - 20, "12. Purchase Section, Directorate of Finance:")
        c.setFont("Helvetica", 12)
        c.drawString(70, y - 36, "Checked and found all formalities of inspection have been completed.")
        c.drawString(50, y - 97, f"Dated: {_text(self.certificate.finance_check_date, '______________')}")
        c.setFont("Helvetica-Bold", 12)
        c.drawString(self.width - 200, y - 97, "Assistant Director Finance")
        c.drawString(self.width - 160, y - 110, "(Purchase)")
