# rtmpcore

Building blocks for an RTMP server and relay. It uses only the standard
library.

## Modules

### `rtmpcore.handshake`

This module implements the RTMP simple handshake (version 3, 1536-byte
blocks).

- `Handshake` is the server-side state machine. It moves through
  `State.INITIAL`, `RECV_C0C1`, `SENT_S0S1S2`, `RECV_C2` and `COMPLETED`
  using `accept_c0c1(c0, c1)`, `set_s1(s1)`, `accept_c2(c2)` and
  `complete()`. It records `c1`, `s1`, `c1_timestamp`, `s1_timestamp` and
  `has_completed`.
- `server_handshake(conn)` runs the server side and returns the completed
  `Handshake`. The sequence is: read C0+C1, send S0+S1+S2 (S2 echoes C1),
  then read C2.
- `client_handshake(conn)` runs the client side. It sends C0+C1, reads S0+S1
  and sends C2 as an echo of S1. It then reads S2 if the server sent it.
- `conn` can be any socket-like object with `recv`, `sendall` and
  `settimeout`.
- Each blocking step has a 5 second timeout. Timeouts are cleared once the
  handshake succeeds.
- A failure raises `HandshakeError`. A timeout raises
  `HandshakeTimeoutError`, which is a subclass of `HandshakeError`.
- A C2 or S2 echo that does not match is only logged as a warning.

### `rtmpcore.control`

This module covers the protocol control messages, types 1 to 6.

- `Message` is a reassembled RTMP message. Its fields are `type_id`,
  `payload`, `timestamp`, `csid`, `message_stream_id` and `message_length`.
- The `encode_*` functions build control messages on chunk stream 2 and
  message stream 0, with timestamp 0:
  - `encode_set_chunk_size`
  - `encode_abort_message`
  - `encode_acknowledgement`
  - `encode_user_control`
  - `encode_user_control_stream_begin`
  - `encode_user_control_ping_request`
  - `encode_user_control_ping_response`
  - `encode_window_acknowledgement_size`
  - `encode_set_peer_bandwidth`
- `decode(type_id, payload)` returns one of `SetChunkSize`, `AbortMessage`,
  `Acknowledgement`, `UserControl`, `WindowAcknowledgementSize` or
  `SetPeerBandwidth`. It raises `ControlError` on any of these:
  - a wrong payload length
  - a zero chunk size or window size
  - bit 31 set in the chunk size
  - a limit type above 2
  - an unsupported type id

  A user control event it does not know is returned with its remaining bytes
  in `raw_data`.
- `handle(state, msg)` applies a decoded message to a `ControlState`. It
  updates `read_chunk_size`, `window_ack_size`, `peer_bandwidth`,
  `limit_type` and `last_peer_ack`. It answers a ping request by passing a
  ping response to `state.send`.

### `rtmpcore.session`

`Session` holds per-connection metadata:

- `app`, `tc_url`, `flash_ver`, `object_encoding`
- `transaction_id`, `stream_id`, `stream_key`
- `state`, a `SessionState`

Its methods are:

- `set_connect_info(...)` moves the session to `CONNECTED`.
- `next_transaction_id()` returns 2 on its first call.
- `allocate_stream_id()` hands out 1, 2, … and moves the session to
  `STREAM_CREATED`.
- `set_stream_key(app, stream_name)` returns `"app/stream_name"` and moves
  the session to `PUBLISHING`.

### `rtmpcore.codecs`

- `parse_audio_message(data)` recognises MP3, AAC (reporting a
  `sequence_header` or `raw` packet type) and Speex.
- `parse_video_message(data)` recognises H.264/AVC (reporting a
  `sequence_header` or `nalu` packet type) and H.265/HEVC. It also reports
  the frame type as `keyframe`, `inter` or `unknown_N`.
- Empty, truncated or unsupported tags raise `MediaParseError`.
- `CodecDetector.process(msg_type, payload, store, logger)` fills in
  `audio_codec` or `video_codec` on a `CodecStore` the first time it parses a
  message of that kind.

### `rtmpcore.stream`

`Stream(key)` stores detected codecs and a list of subscribers.

- `broadcast_message(detector, msg, logger)` runs codec detection on audio
  and video messages, then delivers the message to every subscriber.
- A subscriber that offers `try_send_message(msg)` and returns `False` loses
  that message.
- Other subscribers get `send_message(msg)`. Their errors are logged and
  ignored.
- `null_logger()` returns a logger that discards its output.

### `rtmpcore.recorder`

`Recorder(path)` creates an FLV file and writes the 13-byte header.

- `write_message(msg)` appends audio (type 8) and video (type 9) messages as
  FLV tags and ignores every other type.
- The first write error closes the writer, and `disabled` becomes true. From
  then on, messages are ignored.
- `Recorder.from_writer(writer)` writes to any object that has `write` and
  `close`.
- A recorder can be used as a context manager.

### `rtmpcore.destination` and `rtmpcore.manager`

- `Destination(url, logger, client_factory)` accepts only `rtmp://` URLs.
  Any other URL raises `DestinationError`.
- `connect()` gets a client from the factory, then calls `connect()` and
  `publish()` on it.
- `send_message(msg)` forwards audio and video through `send_audio` and
  `send_video`. It updates `metrics`, a `DestinationMetrics`, and sets
  `status`, a `DestinationStatus`.
- `DestinationManager(urls, logger, client_factory)` keeps destinations
  keyed by URL. A destination whose connect fails is still registered.
- `relay_message(msg)` sends to every destination in parallel threads and
  waits for all of them to finish.
- The manager also offers `statuses()`, `metrics()`, `close()` and `len()`.

## Example

```python
from rtmpcore.control import encode_set_chunk_size, decode
from rtmpcore.recorder import Recorder
from rtmpcore.stream import Stream, null_logger

msg = encode_set_chunk_size(4096)
print(decode(msg.type_id, msg.payload))   # SetChunkSize(size=4096)

from rtmpcore.control import Message

stream = Stream("live/demo")
frame = Message(type_id=9, payload=b"\x17\x00\x01")
stream.broadcast_message(None, frame, null_logger())
print(stream.video_codec)                 # H264

with Recorder("out.flv") as rec:
    rec.write_message(frame)
```

## What it does not do

The package has no listening server and no accept loop. It does not read or
write the chunk stream format, so messages have to be reassembled and
chunked elsewhere. It does not handle AMF commands such as connect, publish
or play. It has no RTMP client of its own: `Destination` uses whatever the
client factory you supply returns. It provides no command-line program.

## Install

```
pip install .
```

## Tests

```
pip install .[test]
pytest
```