import pytest

from rtmpcore.control import Message
from rtmpcore.destination import DestinationError, DestinationStatus
from rtmpcore.manager import DestinationManager

URL_A = "rtmp://localhost/live/a"
URL_B = "rtmp://localhost/live/b"


class FakeClient:
    def __init__(self, url, fail):
        self.url = url
        self.fail = fail
        self.sent = []
        self.closed = False

    def connect(self):
        if "connect" in self.fail:
            raise RuntimeError("connect failed")

    def publish(self):
        pass

    def send_audio(self, timestamp, payload):
        self.sent.append(("audio", timestamp, payload))

    def send_video(self, timestamp, payload):
        self.sent.append(("video", timestamp, payload))

    def close(self):
        self.closed = True
        if "close" in self.fail:
            raise RuntimeError("close failed")


class Factory:
    def __init__(self, fail_by_url=None):
        self.fail_by_url = fail_by_url or {}
        self.clients = {}

    def __call__(self, url):
        client = FakeClient(url, self.fail_by_url.get(url, set()))
        self.clients[url] = client
        return client


def test_constructor_skips_invalid_urls():
    factory = Factory()
    mgr = DestinationManager([URL_A, "http://example.com/x", URL_B], None, factory)
    assert len(mgr) == 2
    assert set(mgr.statuses()) == {URL_A, URL_B}
    assert all(s is DestinationStatus.CONNECTED for s in mgr.statuses().values())


def test_duplicate_destination_rejected():
    mgr = DestinationManager([URL_A], None, Factory())
    with pytest.raises(DestinationError, match="already exists"):
        mgr.add_destination(URL_A)
    assert len(mgr) == 1


def test_invalid_url_raises_on_add():
    mgr = DestinationManager([], None, Factory())
    with pytest.raises(DestinationError, match="create destination"):
        mgr.add_destination("http://example.com/x")
    assert len(mgr) == 0


def test_failed_connect_still_registered():
    mgr = DestinationManager([URL_A], None, Factory({URL_A: {"connect"}}))
    assert mgr.statuses() == {URL_A: DestinationStatus.ERROR}


def test_relay_reaches_all_destinations():
    factory = Factory()
    mgr = DestinationManager([URL_A, URL_B], None, factory)
    msg = Message(type_id=9, payload=b"\x17\x00\x01", timestamp=1025)
    mgr.relay_message(msg)
    for url in (URL_A, URL_B):
        assert factory.clients[url].sent == [("video", msg.timestamp, msg.payload)]
    metrics = mgr.metrics()
    assert {url: m.bytes_sent for url, m in metrics.items()} == {
        URL_A: len(msg.payload),
        URL_B: len(msg.payload),
    }


def test_relay_skips_non_media_and_none():
    factory = Factory()
    mgr = DestinationManager([URL_A], None, factory)
    mgr.relay_message(Message(type_id=20, payload=b"hi"))
    mgr.relay_message(None)
    assert factory.clients[URL_A].sent == []
    assert mgr.metrics()[URL_A].messages_sent == 0


def test_relay_counts_drop_for_failed_destination():
    factory = Factory({URL_B: {"connect"}})
    mgr = DestinationManager([URL_A, URL_B], None, factory)
    mgr.relay_message(Message(type_id=8, payload=b"\xaf\x01"))
    metrics = mgr.metrics()
    assert metrics[URL_A].messages_sent == 1
    assert metrics[URL_B].messages_dropped == 1


def test_close_closes_all_and_clears():
    factory = Factory()
    mgr = DestinationManager([URL_A, URL_B], None, factory)
    mgr.close()
    assert all(c.closed for c in factory.clients.values())
    assert len(mgr) == 0
    assert mgr.statuses() == {}


def test_close_reports_error_but_clears():
    factory = Factory({URL_A: {"close"}})
    mgr = DestinationManager([URL_A, URL_B], None, factory)
    with pytest.raises(RuntimeError, match="close failed"):
        mgr.close()
    assert factory.clients[URL_B].closed
    assert len(mgr) == 0