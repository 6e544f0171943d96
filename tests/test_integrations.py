"""Tests for integrations/: calendar document, fiche mailer, video proxy."""

import httpx
import pytest

from overlay_relay.integrations import CalendarGenerator, FicheMailer, SmtpConfig, TooManyRedirects, VideoProxy
from overlay_relay.integrations import mailer as mailer_module
from overlay_relay.relay import CollaboratorError, ValidationFailed


# -- Calendar -----------------------------------------------------------------


class TestCalendar:
    def test_timed_event(self):
        ics = CalendarGenerator().build({
            "id": "f1",
            "titre": "Tournage, plateau B",
            "start": "2027-03-01T09:30:00Z",
            "lieu": "Studio; Lyon",
        })
        assert ics.startswith("BEGIN:VCALENDAR\r\n")
        assert "UID:fiche-f1@overlay-relay" in ics
        assert "DTSTART:20270301T093000Z" in ics
        assert "DTEND:20270301T103000Z" in ics
        assert "SUMMARY:Tournage\\, plateau B" in ics
        assert "LOCATION:Studio\\; Lyon" in ics
        assert ics.endswith("END:VCALENDAR\r\n")

    def test_all_day_event(self):
        ics = CalendarGenerator().build({"id": "f2", "date": "2027-05-04"})
        assert "DTSTART;VALUE=DATE:20270504" in ics
        assert "DTEND;VALUE=DATE:20270505" in ics

    def test_sequence_increments_per_fiche(self):
        gen = CalendarGenerator()
        assert "SEQUENCE:0" in gen.build({"id": "f1", "date": "2027-01-01"})
        assert "SEQUENCE:1" in gen.build({"id": "f1", "date": "2027-01-02"})
        assert "SEQUENCE:0" in gen.build({"id": "f2", "date": "2027-01-01"})

    def test_long_lines_are_folded(self):
        ics = CalendarGenerator().build({"id": "f", "date": "2027-01-01", "description": "é" * 120})
        assert all(len(line.encode("utf-8")) <= 75 for line in ics.split("\r\n"))

    def test_requires_start(self):
        with pytest.raises(ValidationFailed):
            CalendarGenerator().build({"id": "f"})

    def test_bad_date(self):
        with pytest.raises(ValidationFailed):
            CalendarGenerator().build({"id": "f", "date": "demain"})


# -- Mailer -------------------------------------------------------------------


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host, self.port = host, port
        self.sent = []
        self.tls = False
        self.login_args = None
        FakeSMTP.instances.append(self)

    def starttls(self):
        self.tls = True

    def login(self, user, password):
        self.login_args = (user, password)

    def send_message(self, msg):
        self.sent.append(msg)

    def quit(self):
        pass


class BrokenSMTP(FakeSMTP):
    def send_message(self, msg):
        raise OSError("connection refused")


@pytest.fixture
def smtp_config():
    return SmtpConfig(host="smtp.test", port=2525, username="u", password="p", sender="regie@test.fr")


class TestMailer:
    @pytest.mark.asyncio
    async def test_sends_with_calendar_attachment(self, smtp_config, monkeypatch):
        FakeSMTP.instances = []
        monkeypatch.setattr(mailer_module.smtplib, "SMTP", FakeSMTP)
        mailer = FicheMailer(smtp_config)
        result = await mailer.send({"id": "f1", "titre": "Réunion", "date": "2027-02-02"}, "chef@test.fr")
        assert result["ok"] is True
        server = FakeSMTP.instances[-1]
        assert server.tls is True
        assert server.login_args == ("u", "p")
        msg = server.sent[0]
        assert msg["To"] == "chef@test.fr"
        assert msg["Subject"] == "Fiche : Réunion"
        attachments = list(msg.iter_attachments())
        assert attachments[0].get_filename() == "fiche.ics"

    @pytest.mark.asyncio
    async def test_without_date_no_attachment(self, smtp_config, monkeypatch):
        FakeSMTP.instances = []
        monkeypatch.setattr(mailer_module.smtplib, "SMTP", FakeSMTP)
        await FicheMailer(smtp_config).send({"id": "f1", "titre": "Note"}, "a@b.fr")
        assert list(FakeSMTP.instances[-1].sent[0].iter_attachments()) == []

    @pytest.mark.asyncio
    async def test_smtp_failure_becomes_collaborator_error(self, smtp_config, monkeypatch):
        monkeypatch.setattr(mailer_module.smtplib, "SMTP", BrokenSMTP)
        with pytest.raises(CollaboratorError):
            await FicheMailer(smtp_config).send({"id": "f1"}, "a@b.fr")

    @pytest.mark.asyncio
    async def test_unconfigured(self):
        with pytest.raises(CollaboratorError):
            await FicheMailer(SmtpConfig()).send({"id": "f1"}, "a@b.fr")

    @pytest.mark.asyncio
    async def test_bad_recipient(self, smtp_config):
        with pytest.raises(ValidationFailed):
            await FicheMailer(smtp_config).send({"id": "f1"}, "nobody")


# -- Video proxy --------------------------------------------------------------


def redirect_chain(hops, body=b"VIDEO"):
    """hops 번 리다이렉트 후 본문을 주는 가짜 업스트림."""

    def handler(request):
        step = int(request.url.params.get("step", "0"))
        if step < hops:
            return httpx.Response(302, headers={"location": f"/next?step={step + 1}"})
        return httpx.Response(200, content=body, headers={"content-type": "video/mp4"})

    return httpx.MockTransport(handler)


class TestVideoProxy:
    @pytest.mark.asyncio
    async def test_follows_redirects_within_cap(self):
        proxy = VideoProxy("https://files.test/uc?id={id}", max_redirects=5, transport=redirect_chain(5))
        stream = await proxy.open("abc")
        assert stream.hops == 5
        assert stream.media_type == "video/mp4"
        body = b"".join([chunk async for chunk in stream.iter_bytes()])
        assert body == b"VIDEO"

    @pytest.mark.asyncio
    async def test_too_many_redirects(self):
        proxy = VideoProxy("https://files.test/uc?id={id}", max_redirects=5, transport=redirect_chain(6))
        with pytest.raises(TooManyRedirects):
            await proxy.open("abc")

    @pytest.mark.asyncio
    async def test_upstream_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        proxy = VideoProxy("https://files.test/uc?id={id}", transport=transport)
        with pytest.raises(CollaboratorError):
            await proxy.open("abc")

    @pytest.mark.asyncio
    async def test_missing_id(self):
        with pytest.raises(ValidationFailed):
            await VideoProxy().open("")

    @pytest.mark.asyncio
    async def test_id_is_quoted(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, content=b"")

        proxy = VideoProxy("https://files.test/uc?id={id}", transport=httpx.MockTransport(handler))
        stream = await proxy.open("a/b&c")
        await stream.aclose()
        assert seen == ["https://files.test/uc?id=a%2Fb%26c"]
