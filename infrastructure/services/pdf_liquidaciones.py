import io

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from core.domain.montos import a_decimal, formato_clp

ETIQUETAS_HABERES = [
    ("sueldo_base", "Sueldo base"),
    ("gratificacion", "Gratificación legal"),
    ("horas_extra_1", "Horas extra 50%"),
    ("horas_extra_2", "Horas extra 100%"),
    ("recargo_feriado", "Recargo feriado"),
    ("comisiones", "Comisiones"),
    ("otros_imponibles", "Otros imponibles"),
    ("colacion", "Colación"),
    ("movilizacion", "Movilización"),
    ("asignacion_familiar", "Asignación familiar"),
    ("otros_no_imponibles", "Otros no imponibles"),
]

ETIQUETAS_DESCUENTOS = [
    ("afp", "Cotización AFP"),
    ("salud", "Cotización salud"),
    ("seguro_cesantia", "Seguro de cesantía"),
    ("impuesto_unico", "Impuesto único"),
    ("apv", "APV"),
    ("anticipo", "Anticipo"),
]


def _lineas(desglose: dict, etiquetas: list, extras: dict) -> list:
    lineas = [(txt, formato_clp(desglose[k])) for k, txt in etiquetas if a_decimal(desglose.get(k)) > 0]
    lineas += [(k.replace("_", " ").capitalize(), formato_clp(v)) for k, v in (extras or {}).items() if a_decimal(v) > 0]
    return lineas


def generar_pdf_liquidaciones(empresa_nombre: str, periodo: str, liquidaciones: list, perfiles: dict) -> io.BytesIO:
    """Genera un PDF con una liquidación de sueldo por página (1 o N guardias)."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=letter, rightMargin=40, leftMargin=40, topMargin=40, bottomMargin=40)
    elements = []

    styles = getSampleStyleSheet()
    style_company = ParagraphStyle("Company", parent=styles["Title"], fontSize=16, textColor=colors.HexColor("#1A365D"),
                                   alignment=TA_LEFT, fontName="Helvetica-Bold", spaceAfter=20)
    style_title = ParagraphStyle("DocTitle", parent=styles["Title"], fontSize=14, alignment=TA_CENTER,
                                 fontName="Helvetica-Bold", spaceAfter=5)
    style_sub = ParagraphStyle("DocSub", parent=styles["Normal"], fontSize=10, textColor=colors.HexColor("#34495E"),
                               alignment=TA_CENTER, spaceAfter=25)

    for liq in liquidaciones:
        d = liq["desglose"]
        perfil = perfiles.get(liq["guardia_id"])
        nombre = perfil.nombre_completo if perfil else f"Guardia {liq['guardia_id']}"
        rut = perfil.rut if perfil else "---"

        elements.append(Paragraph(empresa_nombre.upper(), style_company))
        elements.append(Paragraph("LIQUIDACIÓN DE SUELDO", style_title))
        version = f" · Versión {liq['version']}" if liq.get("version", 1) > 1 else ""
        elements.append(Paragraph(f"<b>Periodo: {periodo}</b>{version}", style_sub))

        # Datos del guardia
        info_data = [
            ["GUARDIA:", nombre, "RUT:", rut],
            ["DÍAS ACREDITADOS:", str(a_decimal(d["dias_acreditados"]).normalize()), "PARÁMETROS:", d["version_parametros_id"]],
            ["TOTAL IMPONIBLE:", formato_clp(d["total_imponible"]), "ESTADO:", liq["estado"]],
        ]
        t_info = Table(info_data, colWidths=[110, 200, 90, 115])
        t_info.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#F8FAFC")),
            ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
            ("FONTNAME", (2, 0), (2, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("BOX", (0, 0), (-1, -1), 1, colors.HexColor("#CBD5E1")),
            ("INNERGRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#E2E8F0")),
        ]))
        elements.append(t_info)
        elements.append(Spacer(1, 25))

        # Haberes y descuentos
        bonos = {**d.get("bonos_imponibles", {}), **d.get("bonos_no_imponibles", {})}
        haberes = _lineas(d, ETIQUETAS_HABERES, bonos)
        descuentos = _lineas(d, ETIQUETAS_DESCUENTOS, d.get("otros_descuentos"))
        n = max(len(haberes), len(descuentos), 1)
        haberes += [("", "")] * (n - len(haberes))
        descuentos += [("", "")] * (n - len(descuentos))

        total_haberes = a_decimal(d["total_imponible"]) + a_decimal(d["total_no_imponible"])
        fin_data = [["HABERES", "$", "DESCUENTOS", "$"]]
        fin_data += [[h[0], h[1], ds[0], ds[1]] for h, ds in zip(haberes, descuentos)]
        fin_data.append(["TOTAL HABERES", formato_clp(total_haberes), "TOTAL DESCUENTOS", formato_clp(d["total_descuentos"])])

        t_fin = Table(fin_data, colWidths=[170, 85, 170, 90])
        t_fin.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1A365D")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("ALIGN", (1, 1), (1, -1), "RIGHT"),
            ("ALIGN", (3, 1), (3, -1), "RIGHT"),
            ("BACKGROUND", (0, -1), (-1, -1), colors.HexColor("#F1F5F9")),
            ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
            ("BOX", (0, 0), (-1, -1), 1, colors.HexColor("#1A365D")),
            ("INNERGRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#CBD5E1")),
        ]))
        elements.append(t_fin)
        elements.append(Spacer(1, 15))

        t_neto = Table([["LÍQUIDO A PAGAR:", formato_clp(d["liquido"])]], colWidths=[380, 135])
        t_neto.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#2C3E50")),
            ("TEXTCOLOR", (0, 0), (-1, -1), colors.white),
            ("FONTNAME", (0, 0), (-1, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 12),
            ("ALIGN", (0, 0), (0, 0), "RIGHT"),
            ("ALIGN", (1, 0), (1, 0), "CENTER"),
        ]))
        elements.append(t_neto)

        if a_decimal(d.get("descuentos_no_aplicados")) > 0:
            elements.append(Spacer(1, 10))
            elements.append(Paragraph(
                f"Descuentos no aplicados por falta de líquido: {formato_clp(d['descuentos_no_aplicados'])}",
                styles["Normal"]))

        elements.append(Spacer(1, 80))
        sig_data = [
            ["_____________________________________", "", "_____________________________________"],
            [f"Empleador: {empresa_nombre}", "", f"Trabajador: {nombre}"],
            ["Firma y timbre", "", f"RUT: {rut}"],
        ]
        t_sig = Table(sig_data, colWidths=[200, 115, 200])
        t_sig.setStyle(TableStyle([
            ("ALIGN", (0, 0), (-1, -1), "CENTER"),
            ("FONTNAME", (0, 1), (-1, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
        ]))
        elements.append(t_sig)
        elements.append(PageBreak())

    doc.build(elements)
    buffer.seek(0)
    return buffer
