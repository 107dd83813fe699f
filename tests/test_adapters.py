import asyncio
import signal

import pytest

from canopus.adapters import (
    MockInstruction,
    MockManagedProcess,
    MockProcessAdapter,
    UnixManagedProcess,
    UnixProcessAdapter,
)
from canopus.errors import ProcessSpawnError
from canopus.models import RestartPolicy, ServiceSpec


def make_spec(command="echo", args=("hello",)):
    return ServiceSpec(
        id="test",
        name="Test",
        command=command,
        args=list(args),
        restart_policy=RestartPolicy.NEVER,
        graceful_timeout_secs=5,
        startup_timeout_secs=10,
    )


@pytest.mark.asyncio
async def test_mock_adapter_spawn():
    adapter = MockProcessAdapter()
    proc = await adapter.spawn(make_spec())
    assert proc.pid() > 0
    assert proc.is_alive() is True


@pytest.mark.asyncio
async def test_mock_pid_range():
    adapter = MockProcessAdapter()
    for _ in range(5):
        proc = await adapter.spawn(make_spec())
        assert 1000 <= proc.pid() < 1000 + 65536


@pytest.mark.asyncio
async def test_mock_process_wait():
    adapter = MockProcessAdapter()
    proc = await adapter.spawn(make_spec())
    exit_info = await proc.wait()
    assert exit_info.exit_code == 0
    assert exit_info.signal is None
    assert exit_info.pid == proc.pid()
    assert proc.is_alive() is False


@pytest.mark.asyncio
async def test_mock_process_terminate():
    adapter = MockProcessAdapter()
    await adapter.add_instruction(
        MockInstruction(exit_delay=10.0, exit_code=0, signal=None, responds_to_signals=True)
    )
    proc = await adapter.spawn(make_spec())
    assert proc.is_alive() is True
    await proc.terminate()
    exit_info = await asyncio.wait_for(proc.wait(), 1.0)
    assert exit_info.exit_code is None
    assert exit_info.signal == 15


@pytest.mark.asyncio
async def test_mock_process_kill():
    adapter = MockProcessAdapter()
    await adapter.add_instruction(
        MockInstruction(exit_delay=10.0, exit_code=0, signal=None, responds_to_signals=True)
    )
    proc = await adapter.spawn(make_spec())
    await proc.kill()
    exit_info = await asyncio.wait_for(proc.wait(), 1.0)
    assert exit_info.exit_code is None
    assert exit_info.signal == 9


@pytest.mark.asyncio
async def test_mock_ignoring_signals_reports_instruction_exit():
    adapter = MockProcessAdapter()
    await adapter.add_instruction(
        MockInstruction(exit_delay=10.0, exit_code=3, signal=None, responds_to_signals=False)
    )
    proc = await adapter.spawn(make_spec())
    await proc.terminate()
    exit_info = await asyncio.wait_for(proc.wait(), 1.0)
    assert exit_info.exit_code == 3
    assert exit_info.signal is None


@pytest.mark.asyncio
async def test_mock_adapter_factory_methods():
    spec = make_spec()
    adapter = MockProcessAdapter.success()
    proc = await adapter.spawn(spec)
    assert (await proc.wait()).exit_code == 0

    adapter = MockProcessAdapter.failure()
    proc = await adapter.spawn(spec)
    assert (await proc.wait()).exit_code == 1


@pytest.mark.asyncio
async def test_slow_start_process_stays_alive():
    adapter = MockProcessAdapter.slow_start()
    proc = await adapter.spawn(make_spec())
    assert proc.is_alive() is True
    assert proc.instruction.exit_delay == 5.0


@pytest.mark.asyncio
async def test_instructions_consumed_in_order_then_default():
    adapter = MockProcessAdapter()
    await adapter.set_instructions(
        [MockInstruction(exit_delay=0.0, exit_code=2), MockInstruction(exit_delay=0.0, exit_code=4)]
    )
    codes = [(await (await adapter.spawn(make_spec())).wait()).exit_code for _ in range(3)]
    assert codes == [2, 4, 0]


@pytest.mark.asyncio
async def test_set_instructions_replaces_queue():
    adapter = MockProcessAdapter()
    await adapter.add_instruction(MockInstruction(exit_delay=0.0, exit_code=5))
    await adapter.set_instructions([MockInstruction(exit_delay=0.0, exit_code=6)])
    proc = await adapter.spawn(make_spec())
    assert (await proc.wait()).exit_code == 6


@pytest.mark.asyncio
async def test_mock_has_no_output_streams():
    proc = await MockProcessAdapter().spawn(make_spec())
    assert proc.take_stdout() is None
    assert proc.take_stderr() is None


def test_mock_instruction_defaults():
    instr = MockInstruction()
    assert instr.exit_delay == pytest.approx(0.1)
    assert instr.exit_code == 0
    assert instr.signal is None
    assert instr.responds_to_signals is True


@pytest.mark.asyncio
async def test_mock_managed_process_direct():
    proc = MockManagedProcess(1234, MockInstruction(exit_delay=0.0, exit_code=7, signal=None))
    exit_info = await proc.wait()
    assert exit_info.pid == 1234
    assert exit_info.exit_code == 7


@pytest.mark.asyncio
async def test_unix_adapter_true_exits_zero():
    proc = await UnixProcessAdapter().spawn(make_spec(command="true", args=()))
    assert isinstance(proc, UnixManagedProcess)
    exit_info = await proc.wait()
    assert exit_info.exit_code == 0
    assert exit_info.signal is None
    assert exit_info.pid == proc.pid()


@pytest.mark.asyncio
async def test_unix_adapter_captures_stdout():
    proc = await UnixProcessAdapter().spawn(make_spec(command="echo", args=("hello",)))
    stdout = proc.take_stdout()
    assert stdout.read() == b"hello\n"
    assert proc.take_stdout() is None
    await proc.wait()


@pytest.mark.asyncio
async def test_unix_adapter_kill_reports_signal():
    proc = await UnixProcessAdapter().spawn(make_spec(command="sleep", args=("10",)))
    await proc.kill()
    exit_info = await asyncio.wait_for(proc.wait(), 5.0)
    assert exit_info.exit_code is None
    assert exit_info.signal == int(signal.SIGKILL)


@pytest.mark.asyncio
async def test_unix_adapter_terminate_reports_signal():
    proc = await UnixProcessAdapter().spawn(make_spec(command="sleep", args=("10",)))
    await proc.terminate()
    exit_info = await asyncio.wait_for(proc.wait(), 5.0)
    assert exit_info.signal == int(signal.SIGTERM)


@pytest.mark.asyncio
async def test_unix_adapter_nonexistent_command():
    with pytest.raises(ProcessSpawnError):
        await UnixProcessAdapter().spawn(make_spec(command="nonexistent_command_12345", args=()))