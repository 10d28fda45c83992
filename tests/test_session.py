from rtmpcore.session import Session, SessionState


def test_transaction_id_increment():
    s = Session()
    assert s.transaction_id == 1
    assert s.next_transaction_id() == 2
    assert s.next_transaction_id() == 3
    assert s.transaction_id == 3


def test_initial_state():
    s = Session()
    assert s.state is SessionState.UNINITIALIZED
    assert s.stream_id == 0
    assert s.stream_key == ""


def test_allocate_stream_id():
    s = Session()
    s.set_connect_info("live", "rtmp://example/live", "FMLE/3.0", 0)
    assert s.state is SessionState.CONNECTED
    assert s.app == "live"
    assert s.tc_url == "rtmp://example/live"
    assert s.flash_ver == "FMLE/3.0"
    assert s.object_encoding == 0
    assert s.allocate_stream_id() == 1
    assert s.state is SessionState.STREAM_CREATED
    assert s.allocate_stream_id() == 2
    assert s.state is SessionState.STREAM_CREATED


def test_allocate_without_connect_keeps_state():
    s = Session()
    assert s.allocate_stream_id() == 1
    assert s.state is SessionState.UNINITIALIZED


def test_set_stream_key():
    s = Session()
    s.set_connect_info("live", "rtmp://example/live", "FMLE/3.0", 0)
    s.allocate_stream_id()
    key = s.set_stream_key("live", "testStream")
    assert key == "live/testStream"
    assert s.stream_key == "live/testStream"
    assert s.state is SessionState.PUBLISHING


def test_set_stream_key_empty_app_uses_connect_app():
    s = Session()
    s.set_connect_info("app1", "rtmp://example/app1", "FMLE/3.0", 3)
    assert s.set_stream_key("", "cam") == "app1/cam"
    assert s.app == "app1"
    assert s.state is SessionState.CONNECTED


def test_connect_info_does_not_regress_state():
    s = Session()
    s.set_connect_info("live", "rtmp://example/live", "FMLE/3.0", 0)
    s.allocate_stream_id()
    s.set_connect_info("other", "rtmp://example/other", "FMLE/3.0", 0)
    assert s.state is SessionState.STREAM_CREATED
    assert s.app == "other"