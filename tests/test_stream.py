import logging

from rtmpcore.codecs import AUDIO_CODEC_AAC, VIDEO_CODEC_AVC
from rtmpcore.control import Message
from rtmpcore.stream import Stream, null_logger


class FakeSubscriber:
    def __init__(self, fail_send=False):
        self.received = []
        self.fail_send = fail_send

    def send_message(self, msg):
        if not self.fail_send:
            self.received.append(msg)

    def try_send_message(self, msg):
        if self.fail_send:
            return False
        self.received.append(msg)
        return True


class BlockingSubscriber:
    def __init__(self, error=None):
        self.received = []
        self.error = error

    def send_message(self, msg):
        if self.error is not None:
            raise self.error
        self.received.append(msg)


def mk_msg(type_id, payload):
    return Message(type_id=type_id, payload=payload)


def test_relay_single_subscriber():
    from rtmpcore.codecs import CodecDetector

    stream = Stream("app/solo")
    sub = FakeSubscriber()
    stream.add_subscriber(sub)
    stream.broadcast_message(CodecDetector(), mk_msg(8, b"\xaf\x00\x11\x22"), null_logger())
    assert len(sub.received) == 1
    assert stream.audio_codec == AUDIO_CODEC_AAC


def test_relay_multiple_subscribers():
    from rtmpcore.codecs import CodecDetector

    stream = Stream("app/multi")
    subs = [FakeSubscriber() for _ in range(3)]
    for s in subs:
        stream.add_subscriber(s)
    stream.broadcast_message(CodecDetector(), mk_msg(9, b"\x17\x00\x01\x02\x03"), null_logger())
    assert [len(s.received) for s in subs] == [1, 1, 1]
    assert stream.video_codec == VIDEO_CODEC_AVC


def test_relay_slow_subscriber_dropped():
    from rtmpcore.codecs import CodecDetector

    stream = Stream("app/backpressure")
    slow = FakeSubscriber(fail_send=True)
    fast = FakeSubscriber()
    stream.add_subscriber(slow)
    stream.add_subscriber(fast)
    stream.broadcast_message(CodecDetector(), mk_msg(8, b"\xaf\x01\xaa\xbb"), null_logger())
    assert len(fast.received) == 1
    assert slow.received == []


def test_fallback_to_send_message_and_errors_are_ignored():
    stream = Stream("app/fallback")
    failing = BlockingSubscriber(error=RuntimeError("boom"))
    ok = BlockingSubscriber()
    stream.add_subscriber(failing)
    stream.add_subscriber(ok)
    msg = mk_msg(9, b"\x17\x01\x00")
    stream.broadcast_message(None, msg, null_logger())
    assert ok.received == [msg]
    assert stream.video_codec == VIDEO_CODEC_AVC


def test_add_none_subscriber_is_ignored_and_snapshot_is_copy():
    stream = Stream("app/snap")
    stream.add_subscriber(None)
    sub = FakeSubscriber()
    stream.add_subscriber(sub)
    snap = stream.subscribers()
    snap.clear()
    assert stream.subscribers() == [sub]


def test_broadcast_without_logger_is_noop():
    stream = Stream("app/quiet")
    sub = FakeSubscriber()
    stream.add_subscriber(sub)
    stream.broadcast_message(None, mk_msg(8, b"\xaf\x00"), None)
    assert sub.received == []
    assert stream.audio_codec == ""


def test_non_media_message_relayed_without_detection():
    stream = Stream("app/data")
    sub = FakeSubscriber()
    stream.add_subscriber(sub)
    msg = mk_msg(18, b"\x02\x00")
    stream.broadcast_message(None, msg, null_logger())
    assert sub.received == [msg]
    assert stream.audio_codec == "" and stream.video_codec == ""


def test_codec_detected_only_once():
    stream = Stream("app/once")
    stream.broadcast_message(None, mk_msg(8, b"\xaf\x00"), null_logger())
    stream.broadcast_message(None, mk_msg(8, b"\x20\xff"), null_logger())
    assert stream.audio_codec == AUDIO_CODEC_AAC


def test_null_logger_discards():
    logger = null_logger()
    assert logger.propagate is False
    assert any(isinstance(h, logging.NullHandler) for h in logger.handlers)