"""
Tests for DCC transfer models
"""

from ircore.dcc import Transfer, TransferDirection, TransferStatus


def _transfer(**kwargs) -> Transfer:
    defaults = dict(
        sender="alice",
        receiver="bob",
        file_name="data.bin",
        file_size=1000,
        direction=TransferDirection.SEND,
    )
    defaults.update(kwargs)
    return Transfer(**defaults)


class TestTransferStatus:
    def test_terminal_states(self):
        assert TransferStatus.COMPLETED.is_terminal
        assert TransferStatus.FAILED.is_terminal
        assert TransferStatus.CANCELLED.is_terminal
        assert not TransferStatus.PENDING.is_terminal
        assert not TransferStatus.IN_PROGRESS.is_terminal


class TestAdvance:
    def test_forward_progression(self):
        transfer = _transfer()
        assert transfer.advance(TransferStatus.CONNECTING)
        assert transfer.advance(TransferStatus.IN_PROGRESS)
        assert transfer.advance(TransferStatus.COMPLETED)
        assert transfer.end_time is not None

    def test_never_moves_backwards(self):
        transfer = _transfer(status=TransferStatus.IN_PROGRESS)
        assert not transfer.advance(TransferStatus.CONNECTING)
        assert transfer.status is TransferStatus.IN_PROGRESS

    def test_terminal_is_final(self):
        transfer = _transfer()
        assert transfer.advance(TransferStatus.FAILED, "peer vanished")
        assert not transfer.advance(TransferStatus.CANCELLED)
        assert transfer.status is TransferStatus.FAILED
        assert transfer.error_message == "peer vanished"

    def test_pending_can_be_cancelled(self):
        transfer = _transfer()
        assert transfer.advance(TransferStatus.CANCELLED)


class TestDerivedValues:
    def test_peer(self):
        assert _transfer().peer == "bob"
        assert _transfer(direction=TransferDirection.RECEIVE).peer == "alice"

    def test_progress(self):
        transfer = _transfer(bytes_transferred=250)
        assert transfer.progress_percentage == 25.0
        assert transfer.remaining_bytes == 750

    def test_empty_file_progress(self):
        transfer = _transfer(file_size=0)
        assert transfer.progress_percentage == 0.0
        transfer.advance(TransferStatus.COMPLETED)
        assert transfer.progress_percentage == 100.0

    def test_rate_and_eta(self):
        transfer = _transfer(bytes_transferred=500, start_time=1000.0, end_time=1010.0)
        assert transfer.duration == 10
        assert transfer.transfer_rate == 50
        assert transfer.estimated_time_remaining == 10

    def test_no_rate_without_bytes(self):
        transfer = _transfer()
        assert transfer.estimated_time_remaining is None

    def test_snapshot_is_independent(self):
        transfer = _transfer()
        copy = transfer.snapshot()
        transfer.bytes_transferred = 900
        transfer.advance(TransferStatus.IN_PROGRESS)
        assert copy.bytes_transferred == 0
        assert copy.status is TransferStatus.PENDING
        assert copy.id == transfer.id

    def test_ids_unique(self):
        assert _transfer().id != _transfer().id
