from html import escape

from yad2_checker.models import Listing


def format_price(price: str) -> str:
    # "5000" -> "5,000 ₪"; anything already formatted upstream is kept
    if price.isdigit():
        return f"{int(price):,} ₪"
    return price


def format_message(li: Listing) -> str:
    # Bold title, blank line, price and link
    return "\n".join([
        f"<b>{escape(li.title)}</b>",
        "",
        f"💰 Price: {escape(format_price(li.price))}",
        f'🔗 <a href="{escape(li.link, quote=True)}">Open on Yad2</a>',
    ])
