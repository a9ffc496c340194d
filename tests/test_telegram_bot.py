import pytest
from telegram.error import BadRequest, NetworkError, TimedOut

from yad2_checker.bot.telegram_bot import TelegramNotifier, chat_id_of
from yad2_checker.models import Listing
from yad2_checker.utils.formatting import format_message, format_price


class FakeBot:
    def __init__(self, error=None):
        self.error = error
        self.messages = []

    async def send_message(self, **kwargs):
        if self.error is not None:
            raise self.error
        self.messages.append(kwargs)


@pytest.mark.asyncio
async def test_deliver_sends_html_message():
    bot = FakeBot()
    ok = await TelegramNotifier(bot).deliver("12345", "<b>hi</b>")

    assert ok is True
    msg = bot.messages[0]
    assert msg["chat_id"] == 12345
    assert msg["text"] == "<b>hi</b>"
    assert msg["parse_mode"] == "HTML"
    assert msg["link_preview_options"].is_disabled


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [BadRequest("Chat not found"), NetworkError("reset"), TimedOut()])
async def test_deliver_reports_failure_instead_of_raising(error):
    assert await TelegramNotifier(FakeBot(error)).deliver("1", "x") is False


def test_chat_ids():
    assert chat_id_of("-100200") == -100200
    assert chat_id_of("@yad2_feed") == "@yad2_feed"


def test_message_format_escapes_fields():
    li = Listing(id="1", link="https://www.yad2.co.il/realestate/item/1?a=1&b=2",
                 title="Rothschild <5>", price="9500")
    text = format_message(li)

    assert text.splitlines()[0] == "<b>Rothschild &lt;5&gt;</b>"
    assert "9,500 ₪" in text
    assert 'href="https://www.yad2.co.il/realestate/item/1?a=1&amp;b=2"' in text


def test_format_price_keeps_upstream_formatting():
    assert format_price("6,000 ₪") == "6,000 ₪"
    assert format_price("4200") == "4,200 ₪"
