import pytest

from blinktrack.buffers import BufferNotConnectedError, Buffers
from blinktrack.types import Event


def _batch(*times):
    return tuple(Event(x=1, y=2, t=t) for t in times)


def test_reading_without_input_raises():
    with pytest.raises(BufferNotConnectedError):
        Buffers().get_batch()


def test_error_is_a_runtime_error():
    with pytest.raises(RuntimeError):
        Buffers().get_batch_and_send_further()


def test_send_batch_reaches_every_output():
    source = Buffers()
    first = source.output_buffer()
    second = source.output_buffer()
    batch = _batch(1, 2, 3)
    source.send_batch(batch)
    assert first.get_nowait() is batch
    assert second.get_nowait() is batch


def test_deregistered_buffer_gets_nothing():
    source = Buffers()
    kept = source.output_buffer()
    dropped = source.output_buffer()
    source.deregister_buffer(dropped)
    source.send_batch(_batch(5))
    assert dropped.empty()
    assert kept.qsize() == 1
    assert source.output_buffers == [kept]


def test_get_batch_times_out_with_none():
    source = Buffers()
    stage = Buffers(source.output_buffer())
    assert stage.get_batch(timeout=0.001) is None
    assert stage.current_batch is None


def test_get_batch_sets_current_batch():
    source = Buffers()
    stage = Buffers(source.output_buffer())
    batch = _batch(10, 20)
    source.send_batch(batch)
    assert stage.get_batch(timeout=0.1) is batch
    assert stage.current_batch is batch


def test_batches_arrive_in_order():
    source = Buffers()
    stage = Buffers(source.output_buffer())
    batches = [_batch(i) for i in range(5)]
    for batch in batches:
        source.send_batch(batch)
    received = [stage.get_batch(timeout=0.1) for _ in batches]
    assert received == batches


def test_get_batch_and_send_further_forwards():
    source = Buffers()
    middle = Buffers(source.output_buffer())
    downstream = Buffers(middle.output_buffer())
    batch = _batch(7, 8)
    source.send_batch(batch)
    assert middle.get_batch_and_send_further() is batch
    assert downstream.get_batch(timeout=0.1) is batch


def test_get_batch_and_send_further_on_empty_returns_none():
    source = Buffers()
    middle = Buffers(source.output_buffer())
    downstream_queue = middle.output_buffer()
    assert middle.get_batch_and_send_further() is None
    assert downstream_queue.empty()