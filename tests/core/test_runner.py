import json
import os
import stat
import tempfile
import unittest
from pathlib import Path

from shellrunner.core.config import RunConfig
from shellrunner.core.errors import ExitCodeRejected, RenderError, ScriptExecutionError
from shellrunner.core.runner import LocalShellRunner
from shellrunner.core.runtime_context import RuntimeContext
from shellrunner.discovery import HttpDiscovery
from shellrunner.redaction import REDACTED, SecretFilter
from shellrunner.shared_state import SharedStateStore
from shellrunner.ui import BufferedUi


class RecordingCommunicator:
    def __init__(self, exit_code: int = 0):
        self.calls = []
        self.exit_code = exit_code

    def run(self, argv, ui, *, cancel=None):
        self.calls.append(list(argv))
        return self.exit_code


def _events(trace_path: Path):
    if not trace_path.exists():
        return []
    return [json.loads(l) for l in trace_path.read_text(encoding="utf-8").splitlines() if l.strip()]


def _write_script(path: Path, body: str) -> str:
    path.write_text(body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return str(path)


class RunnerTestBase(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.tmp = Path(self._td.name)
        self.trace_path = self.tmp / "trace.jsonl"
        self.scripts_dir = self.tmp / "generated"
        self.scripts_dir.mkdir()
        self.state = SharedStateStore(tmp_dir=self.tmp / "state", run_uuid="u1")
        self.ui = BufferedUi()

    def tearDown(self) -> None:
        self._td.cleanup()

    def ctx(self, runtime_os: str = "linux") -> RuntimeContext:
        return RuntimeContext(
            run_id="run_test",
            build_name="web",
            builder_type="docker",
            runtime_os=runtime_os,
            trace_path=self.trace_path,
        )

    def runner(self, communicator=None, secret_filter=None) -> LocalShellRunner:
        return LocalShellRunner(
            shared_state=self.state,
            discovery=HttpDiscovery(),
            communicator=communicator,
            secret_filter=secret_filter,
            tmp_dir=self.scripts_dir,
        )


class TestOsGate(RunnerTestBase):
    def test_unlisted_os_is_a_successful_skip(self) -> None:
        comm = RecordingCommunicator()
        cfg = RunConfig(inline=("echo 1",), only_on=("windows", "darwin"), execute_command=("{{ Script }}",))
        result = self.runner(comm).run(self.ctx("linux"), self.ui, cfg)
        self.assertTrue(result.ok)
        self.assertFalse(result.os_allowed)
        self.assertTrue(result.skipped)
        self.assertEqual(comm.calls, [])
        self.assertEqual(list(self.scripts_dir.iterdir()), [])
        self.assertEqual(self.ui.of_kind("say"), ["Skipping shell-local due to runtime OS"])
        self.assertIn("run_skipped", [e["event_type"] for e in _events(self.trace_path)])

    def test_empty_only_on_runs_on_any_os(self) -> None:
        comm = RecordingCommunicator()
        cfg = RunConfig(inline=("echo 1",), execute_command=("{{ Script }}",))
        for os_name in ("linux", "windows", "solaris"):
            result = self.runner(comm).run(self.ctx(os_name), self.ui, cfg)
            self.assertTrue(result.os_allowed)
        self.assertEqual(len(comm.calls), 3)


class TestCommandsAndEnvironment(RunnerTestBase):
    def test_each_script_gets_rendered_command(self) -> None:
        comm = RecordingCommunicator()
        cfg = RunConfig(
            scripts=("/opt/a.sh", "/opt/b.sh"),
            execute_command=("/bin/sh", "-c", "{{ Vars }}{{ Command }}"),
            environment_vars=("B=2", "A=1"),
        )
        result = self.runner(comm).run(self.ctx(), self.ui, cfg)
        env = "A='1' B='2' PACKER_BUILDER_TYPE='docker' PACKER_BUILD_NAME='web' "
        self.assertEqual(
            comm.calls,
            [["/bin/sh", "-c", env + "/opt/a.sh"], ["/bin/sh", "-c", env + "/opt/b.sh"]],
        )
        self.assertEqual([r.script for r in result.results], ["/opt/a.sh", "/opt/b.sh"])
        self.assertEqual(result.results[0].command, "/bin/sh -c " + env + "/opt/a.sh")
        self.assertEqual(
            self.ui.of_kind("say"),
            ["Running local shell script: /opt/a.sh", "Running local shell script: /opt/b.sh"],
        )

    def test_env_render_failure_runs_nothing(self) -> None:
        comm = RecordingCommunicator()
        cfg = RunConfig(inline=("echo 1",), execute_command=("{{ Script }}",), environment_vars=("X={{ Unknown }}",))
        with self.assertRaises(RenderError):
            self.runner(comm).run(self.ctx(), self.ui, cfg)
        self.assertEqual(comm.calls, [])
        self.assertEqual(list(self.scripts_dir.iterdir()), [])

    def test_command_render_failure_runs_nothing(self) -> None:
        comm = RecordingCommunicator()
        cfg = RunConfig(scripts=("/opt/a.sh",), execute_command=("{{ Scrpit }}",))
        with self.assertRaises(RenderError) as cm:
            self.runner(comm).run(self.ctx(), self.ui, cfg)
        self.assertEqual(cm.exception.code, "command.render_failed")
        self.assertEqual(comm.calls, [])
        events = _events(self.trace_path)
        self.assertEqual(events[-1]["event_type"], "run_finished")
        self.assertFalse(events[-1]["data"]["ok"])

    def test_secret_is_rendered_but_redacted_from_trace(self) -> None:
        self.state.store("winrm_password", "web", "s3cr3t-pw")
        comm = RecordingCommunicator()
        filt = SecretFilter()
        cfg = RunConfig(
            scripts=("/opt/a.sh",),
            execute_command=("{{ Vars }}", "{{ WinRMPassword }}", "{{ Script }}"),
            environment_vars=("PASS={{ WinRMPassword }}",),
        )
        self.runner(comm, secret_filter=filt).run(self.ctx(), self.ui, cfg)
        self.assertIn("s3cr3t-pw", comm.calls[0])
        self.assertIn("PASS='s3cr3t-pw'", comm.calls[0][0])
        self.assertIn("s3cr3t-pw", filt)
        text = self.trace_path.read_text(encoding="utf-8")
        self.assertNotIn("s3cr3t-pw", text)
        self.assertIn(REDACTED, text)

    def test_missing_secret_renders_empty(self) -> None:
        comm = RecordingCommunicator()
        cfg = RunConfig(scripts=("/opt/a.sh",), execute_command=("[{{ WinRMPassword }}]",))
        self.runner(comm).run(self.ctx(), self.ui, cfg)
        self.assertEqual(comm.calls, [["[]"]])

    def test_undecodable_secret_renders_empty(self) -> None:
        path = self.state.path_for("winrm_password", "web")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\xff\xfe")
        comm = RecordingCommunicator()
        cfg = RunConfig(scripts=("/opt/a.sh",), execute_command=("[{{ WinRMPassword }}]",))
        result = self.runner(comm).run(self.ctx(), self.ui, cfg)
        self.assertTrue(result.ok)
        self.assertEqual(comm.calls, [["[]"]])
        self.assertEqual(_events(self.trace_path)[-1]["event_type"], "run_finished")


@unittest.skipUnless(os.name == "posix", "uses /bin/sh")
class TestExecution(RunnerTestBase):
    def test_inline_script_content_and_cleanup_on_success(self) -> None:
        copy = self.tmp / "copy.sh"
        cfg = RunConfig(
            inline=("echo 1", "echo 2"),
            execute_command=("/bin/sh", "-c", "test -x {{ Script }} && cp {{ Script }} " + str(copy) + " && {{ Script }}"),
        )
        result = self.runner().run(self.ctx(), self.ui, cfg)
        self.assertTrue(result.ok)
        self.assertEqual(copy.read_text(encoding="utf-8"), "echo 1\necho 2\n")
        self.assertEqual(self.ui.of_kind("message"), ["1", "2"])
        self.assertFalse(Path(result.results[0].script).exists())
        self.assertEqual(list(self.scripts_dir.iterdir()), [])

    def test_inline_script_cleanup_on_failure(self) -> None:
        cfg = RunConfig(inline=("exit 3",), execute_command=("/bin/sh", "{{ Script }}"))
        with self.assertRaises(ExitCodeRejected) as cm:
            self.runner().run(self.ctx(), self.ui, cfg)
        self.assertEqual(cm.exception.data["exit_code"], 3)
        self.assertEqual(list(self.scripts_dir.iterdir()), [])

    def test_default_posix_command_runs_inline_with_shebang(self) -> None:
        cfg = RunConfig(
            inline=("echo \"$PACKER_BUILD_NAME/$GREETING\"",),
            inline_shebang="/bin/sh -e",
            execute_command=("/bin/sh", "-c", "{{ Vars }} {{ Script }}"),
            environment_vars=("GREETING=it's me",),
        )
        self.runner().run(self.ctx(), self.ui, cfg)
        self.assertEqual(self.ui.of_kind("message"), ["web/it's me"])

    def test_rejected_exit_code_stops_remaining_scripts(self) -> None:
        marker = self.tmp / "b-ran"
        a = _write_script(self.tmp / "a.sh", "exit 1\n")
        b = _write_script(self.tmp / "b.sh", f"touch {marker}\n")
        cfg = RunConfig(scripts=(a, b), execute_command=("/bin/sh", "{{ Script }}"))
        with self.assertRaises(ExitCodeRejected) as cm:
            self.runner().run(self.ctx(), self.ui, cfg)
        self.assertIn(a, str(cm.exception))
        self.assertEqual(cm.exception.data["script"], a)
        self.assertFalse(marker.exists())
        events = _events(self.trace_path)
        started = [e["script"] for e in events if e["event_type"] == "script_started"]
        self.assertEqual(started, [a])

    def test_valid_exit_codes_allow_continuing(self) -> None:
        a = _write_script(self.tmp / "a.sh", "exit 2\n")
        b = _write_script(self.tmp / "b.sh", "echo b\n")
        cfg = RunConfig(scripts=(a, b), execute_command=("/bin/sh", "{{ Script }}"), valid_exit_codes=(0, 2))
        result = self.runner().run(self.ctx(), self.ui, cfg)
        self.assertEqual([r.exit_code for r in result.results], [2, 0])
        self.assertEqual(self.ui.of_kind("message"), ["b"])

    def test_start_failure_names_script(self) -> None:
        cfg = RunConfig(scripts=("/opt/a.sh",), execute_command=("/no/such/interpreter", "{{ Script }}"))
        with self.assertRaises(ScriptExecutionError) as cm:
            self.runner().run(self.ctx(), self.ui, cfg)
        self.assertIn("Error executing script: /opt/a.sh", cm.exception.message)
        self.assertEqual(cm.exception.data["script"], "/opt/a.sh")

    def test_trace_records_lifecycle(self) -> None:
        cfg = RunConfig(inline=("true",), execute_command=("/bin/sh", "{{ Script }}"))
        self.runner().run(self.ctx(), self.ui, cfg)
        types = [e["event_type"] for e in _events(self.trace_path)]
        for expected in ("run_started", "script_materialized", "script_started", "script_finished", "run_finished"):
            self.assertIn(expected, types)
        self.assertEqual(types[-1], "run_finished")


if __name__ == "__main__":
    unittest.main()
