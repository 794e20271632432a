"""Order confirmation rendering (subject, plain text and HTML bodies)."""
from html import escape
from typing import Any, Dict, List, Optional, Tuple


def format_amount(amount: int, currency: str) -> str:
    return f"{amount / 100:,.2f} {currency.upper()}"


def order_number(order_id: str) -> str:
    return order_id[:8].upper()


def _item_details(item: Dict[str, Any]) -> str:
    parts = [f"Qty: {item['quantity']}"]
    if item.get("selected_color"):
        parts.append(f"Color: {item['selected_color']}")
    if item.get("selected_size"):
        parts.append(f"Size: {item['selected_size']}")
    return " | ".join(parts)


def render_order_confirmation(
    order: Dict[str, Any], items: List[Dict[str, Any]], customer_name: Optional[str] = None
) -> Tuple[str, str, str]:
    number = order_number(order["id"])
    currency = order.get("currency") or "usd"
    greeting = f"Hi {customer_name}," if customer_name else "Hi,"
    subject = f"Order Confirmation #{number}"

    text_lines = [greeting, "", f"Thanks for your order #{number}. We're getting it ready.", ""]
    for it in items:
        text_lines.append(
            f"- {it.get('product_name') or 'Product'} ({_item_details(it)}): {format_amount(it['price'], currency)}"
        )
    text_lines += ["", f"Total: {format_amount(order['total_amount'], currency)}"]
    text = "\n".join(text_lines)

    rows = "".join(
        "<tr>"
        f"<td>{escape(it.get('product_name') or 'Product')}<br><small>{escape(_item_details(it))}</small></td>"
        f"<td style=\"text-align:right\">{format_amount(it['price'], currency)}</td>"
        "</tr>"
        for it in items
    )
    html = (
        "<!DOCTYPE html><html><body>"
        f"<p>{escape(greeting)}</p>"
        f"<h2>Order #{number}</h2>"
        f"<p>Status: {escape(order.get('status') or '')}</p>"
        f"<table width=\"100%\">{rows}</table>"
        f"<p><strong>Total: {format_amount(order['total_amount'], currency)}</strong></p>"
        "</body></html>"
    )
    return subject, text, html
