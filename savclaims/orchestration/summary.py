"""Claim summary rows, HTML table and webhook payload builders."""

import html
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..models.claim import ClaimReason, FilledForm

logger = logging.getLogger(__name__)

HTML_TABLE_HEADERS = [
    "Désignation",
    "Quantité demandée",
    "Quantité facturée",
    "Unité demandée",
    "Unité facturée",
    "Motif",
    "Commentaire",
    "Prix Unitaire",
    "Prix Total",
    "Images",
]


def split_product_label(label: Optional[str]) -> Tuple[str, str]:
    """
    Split an invoice label into article code and product name.

    ``"ABC123 Pommes Gala"`` gives ``("ABC123", "Pommes Gala")``.
    """
    if not label:
        return "", ""
    code, _, name = label.partition(" ")
    return code, name


def format_address(addr: Optional[Dict[str, Any]]) -> str:
    """Join an address dict for display, ``N/A`` when empty."""
    if not addr or (not addr.get("address") and not addr.get("city")):
        return "N/A"
    parts = [addr.get(key) for key in ("address", "postal_code", "city", "country_alpha2")]
    return ", ".join(str(p) for p in parts if p)


def format_eur(amount: Any) -> str:
    """Format an amount the French way: ``1 234,50 €``."""
    if amount in (None, ""):
        return ""
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return str(amount)
    formatted = f"{value:,.2f}".replace(",", " ").replace(".", ",")
    return f"{formatted} €"


def _unit_price(item: Dict[str, Any]) -> Optional[float]:
    amount = item.get("amount")
    quantity = item.get("quantity")
    if amount and quantity:
        return float(amount) / float(quantity)
    return None


def _reason_label(reason: str) -> str:
    try:
        return ClaimReason(reason).label
    except ValueError:
        return ""


def build_claim_rows(
    filled_forms: Sequence[FilledForm],
    items: Sequence[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """
    Build one summary row per filled claim form.

    Args:
        filled_forms: FilledForm entries from the form store
        items: Invoice line items, indexed like the forms

    Returns:
        List of row dicts with requested/invoiced values and image URLs
    """
    rows = []
    for entry in filled_forms:
        form = entry.form
        item = items[entry.index] if 0 <= entry.index < len(items) else {}
        code, name = split_product_label(item.get("label"))

        rows.append({
            "index": entry.index,
            "label": item.get("label", ""),
            "articleCode": code,
            "designation": name,
            "requestedQuantity": form.quantity,
            "requestedUnit": form.unit,
            "invoicedQuantity": item.get("quantity", ""),
            "invoicedUnit": item.get("unit", ""),
            "reason": form.reason,
            "reasonLabel": _reason_label(form.reason),
            "comment": form.comment,
            "unitPrice": _unit_price(item),
            "totalPrice": item.get("amount"),
            "images": form.uploaded_urls(),
        })
    return rows


def build_sav_html_table(
    filled_forms: Sequence[FilledForm],
    items: Sequence[Dict[str, Any]]
) -> str:
    """
    Render the claim summary as an HTML table for the notification e-mail.

    Cell values are HTML-escaped. Only uploaded images are linked.
    """
    parts = [
        '<table border="1" cellpadding="5" cellspacing="0" style="border-collapse:collapse;">',
        "<tr>" + "".join(f"<th>{h}</th>" for h in HTML_TABLE_HEADERS) + "</tr>",
    ]

    for entry in filled_forms:
        form = entry.form
        item = items[entry.index] if 0 <= entry.index < len(items) else {}
        links = "<br>".join(
            f'<a href="{html.escape(image.uploaded_url)}">{html.escape(image.name)}</a>'
            for image in form.images
            if image.uploaded_url
        )
        cells = [
            item.get("label") or "",
            form.quantity if form.quantity not in (None, "") else "",
            item.get("quantity") or "",
            form.unit or "",
            item.get("unit") or "",
            form.reason or "",
            form.comment or "",
            format_eur(_unit_price(item)),
            format_eur(item.get("amount")) if item.get("amount") else "",
        ]
        parts.append(
            "<tr>"
            + "".join(f"<td>{html.escape(str(cell))}</td>" for cell in cells)
            + f"<td>{links}</td>"
            + "</tr>"
        )

    parts.append("</table>")
    return "".join(parts)


def build_webhook_payload(
    sav_dossier: str,
    share_link: str,
    filled_forms: Sequence[FilledForm],
    invoice: Dict[str, Any],
    email: Optional[str] = None,
    report_url: Optional[str] = None
) -> Dict[str, Any]:
    """
    Assemble the JSON payload posted to the SAV webhook.

    Args:
        sav_dossier: SAV folder name holding the uploaded files
        share_link: Share link of that folder
        filled_forms: FilledForm entries (images already carry their URLs)
        invoice: Invoice data (number, date, special mention, customer, line_items)
        email: Customer e-mail entered in the wizard
        report_url: URL of the uploaded report file, if one was sent

    Returns:
        Payload dictionary
    """
    items = invoice.get("line_items") or []
    customer = invoice.get("customer") or {}
    emails = customer.get("emails") or []

    payload = {
        "savDossier": sav_dossier,
        "shareLink": share_link,
        "email": email or (emails[0] if emails else None),
        "invoice": {
            "number": invoice.get("invoice_number"),
            "date": invoice.get("date"),
            "specialMention": invoice.get("special_mention", ""),
            "paid": invoice.get("paid"),
        },
        "customer": {
            "id": customer.get("source_id"),
            "name": customer.get("name"),
            "email": emails[0] if emails else None,
            "phone": customer.get("phone"),
            "deliveryAddress": format_address(customer.get("delivery_address")),
            "billingAddress": format_address(customer.get("billing_address")),
        },
        "claims": build_claim_rows(filled_forms, items),
        "htmlTable": build_sav_html_table(filled_forms, items),
        "submittedAt": datetime.now(timezone.utc).isoformat(),
    }
    if report_url:
        payload["reportUrl"] = report_url

    logger.debug(f"Built webhook payload for {sav_dossier} with {len(payload['claims'])} claim(s)")
    return payload
