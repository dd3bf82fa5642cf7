"""Tests for the pipeline runner."""

from unittest.mock import MagicMock

import pytest

from conftest import CommandResponse
from kubeship.modules.executor import CommandExecutor
from kubeship.modules.pipeline import (
    FAILURE_BANNER,
    FailureKind,
    PipelineRunner,
    Stage,
    StageResult,
    StageStatus,
    default_stages,
)
from kubeship.modules.pipeline.runner import PENDING_URL_MESSAGE


class Recorder:
    """Collects the order in which stage bodies and post actions run."""

    def __init__(self):
        self.events = []

    def stage(self, name, result=None, exc=None):
        def body(ctx, executor):
            self.events.append(name)
            if exc:
                raise exc
            return result or StageResult.ok()
        return Stage(name, body)

    def cleanup(self, ctx, executor):
        self.events.append("cleanup")
        return StageResult.ok()


def make_runner(recorder, stages, url="http://app.example.com", cleanup=None):
    messages = []
    runner = PipelineRunner(
        MagicMock(spec=CommandExecutor),
        stages=stages,
        cleanup_action=cleanup or recorder.cleanup,
        access_url_resolver=lambda ctx, executor: url,
        echo=messages.append,
    )
    return runner, messages


class TestPipelineRunner:
    def test_runs_stages_in_declared_order(self, pipeline_context):
        recorder = Recorder()
        stages = [recorder.stage(name) for name in ("A", "B", "C")]
        runner, messages = make_runner(recorder, stages)

        run = runner.run(pipeline_context)

        assert run.success
        assert recorder.events == ["A", "B", "C", "cleanup"]
        assert run.executed == ["A", "B", "C"]
        assert run.skipped == []
        assert run.access_url == "http://app.example.com"
        assert messages == ["Application is accessible at: http://app.example.com"]

    def test_order_is_the_same_on_every_run(self, pipeline_context):
        recorder = Recorder()
        runner, _ = make_runner(recorder, [recorder.stage(name) for name in ("A", "B", "C")])

        first = runner.run(pipeline_context).executed
        second = runner.run(pipeline_context).executed

        assert first == second == ["A", "B", "C"]

    def test_failure_skips_remaining_stages_and_prints_banner(self, pipeline_context):
        recorder = Recorder()
        stages = [
            recorder.stage("A"),
            recorder.stage("B", StageResult.failed("exit 1")),
            recorder.stage("C"),
            recorder.stage("D"),
        ]
        runner, messages = make_runner(recorder, stages)

        run = runner.run(pipeline_context)

        assert run.status == StageStatus.FAILURE
        assert recorder.events == ["A", "B", "cleanup"]
        assert run.skipped == ["C", "D"]
        assert run.failed_stage.name == "B"
        assert run.access_url is None
        assert messages == [FAILURE_BANNER]

    def test_exception_in_stage_is_a_failure(self, pipeline_context):
        recorder = Recorder()
        stages = [recorder.stage("A", exc=RuntimeError("boom")), recorder.stage("B")]
        runner, messages = make_runner(recorder, stages)

        run = runner.run(pipeline_context)

        assert not run.success
        assert run.failed_stage.result.kind == FailureKind.ERROR
        assert "boom" in run.failed_stage.result.reason
        assert recorder.events == ["A", "cleanup"]
        assert messages == [FAILURE_BANNER]

    @pytest.mark.parametrize("fail_at", range(4))
    def test_cleanup_runs_exactly_once(self, pipeline_context, fail_at):
        recorder = Recorder()
        stages = [
            recorder.stage(f"S{i}", StageResult.failed("x") if i == fail_at else None)
            for i in range(3)
        ]
        runner, _ = make_runner(recorder, stages)

        runner.run(pipeline_context)

        assert recorder.events.count("cleanup") == 1

    def test_cleanup_failure_does_not_change_outcome(self, pipeline_context):
        recorder = Recorder()

        def failing_cleanup(ctx, executor):
            recorder.events.append("cleanup")
            return StageResult.failed("No such image")

        runner, messages = make_runner(recorder, [recorder.stage("A")], cleanup=failing_cleanup)

        run = runner.run(pipeline_context)

        assert run.success
        assert messages == ["Application is accessible at: http://app.example.com"]

    def test_cleanup_exception_is_suppressed(self, pipeline_context):
        recorder = Recorder()

        def exploding_cleanup(ctx, executor):
            raise OSError("docker daemon not running")

        runner, messages = make_runner(recorder, [recorder.stage("A", StageResult.failed("x"))],
                                       cleanup=exploding_cleanup)

        run = runner.run(pipeline_context)

        assert not run.success
        assert messages == [FAILURE_BANNER]

    def test_cleanup_runs_when_interrupted(self, pipeline_context):
        recorder = Recorder()
        stages = [recorder.stage("A", exc=KeyboardInterrupt()), recorder.stage("B")]
        runner, _ = make_runner(recorder, stages)

        with pytest.raises(KeyboardInterrupt):
            runner.run(pipeline_context)

        assert recorder.events == ["A", "cleanup"]

    def test_pending_load_balancer(self, pipeline_context):
        recorder = Recorder()
        runner, messages = make_runner(recorder, [recorder.stage("A")], url=None)

        run = runner.run(pipeline_context)

        assert run.success
        assert messages == [PENDING_URL_MESSAGE]


@pytest.mark.command_mock
class TestDefaultPipeline:
    """Full delivery pipeline against mocked tools."""

    @pytest.fixture
    def workspace(self, tmp_path):
        (tmp_path / ".scannerwork").mkdir()
        (tmp_path / ".scannerwork" / "report-task.txt").write_text("ceTaskId=AX1\n")
        (tmp_path / "k8s").mkdir()
        (tmp_path / "k8s" / "deployment.yaml").write_text(
            "kind: Deployment\nmetadata:\n  name: my-website\nspec:\n  template:\n    spec:\n"
            "      containers:\n        - name: my-website\n          image: placeholder\n"
        )
        return tmp_path

    def _runner(self, verdict="OK"):
        client = MagicMock()
        client.wait_for_quality_gate.return_value = MagicMock(passed=verdict == "OK", status=verdict)
        client.wait_for_quality_gate.return_value.failed_conditions.return_value = []
        messages = []
        runner = PipelineRunner(
            CommandExecutor(),
            stages=default_stages(gate_client_factory=lambda ctx: client),
            echo=messages.append,
        )
        return runner, messages

    def test_successful_run(self, command_mocker, workspace, pipeline_context):
        command_mocker.register("get-login-password", CommandResponse(stdout="pw\n"))
        command_mocker.register("hostname", CommandResponse(stdout="lb.example.com"))
        runner, messages = self._runner()

        run = runner.run(pipeline_context)

        assert run.success, run.failed_stage
        assert command_mocker.programs == [
            "git checkout",
            "sonar-scanner -Dsonar.projectKey=my-website",
            "docker build",
            "trivy image",
            "aws ecr",
            "docker login",
            "docker push",
            "docker push",
            "aws eks",
            "kubectl apply",
            "kubectl rollout",
            "kubectl get",
            "kubectl get",
            "docker rmi",
            "kubectl get",
        ]
        assert messages == ["Application is accessible at: http://lb.example.com"]

    def test_build_failure_stops_pipeline(self, command_mocker, workspace, pipeline_context):
        command_mocker.register("docker build", CommandResponse(stderr="failed to solve", returncode=1))
        runner, messages = self._runner()

        run = runner.run(pipeline_context)

        assert run.failed_stage.name == "Build-Image"
        assert run.skipped == [
            "Vulnerability-Scan", "Push-Image", "Update-Kubeconfig", "Deploy", "Verify-Deployment",
        ]
        assert not command_mocker.was_called_with("docker push")
        assert not command_mocker.was_called_with("kubectl")
        assert len(command_mocker.get_calls_matching("docker rmi")) == 1
        assert messages == [FAILURE_BANNER]

    def test_quality_gate_rejection_stops_before_build(self, command_mocker, workspace, pipeline_context):
        runner, messages = self._runner(verdict="ERROR")

        run = runner.run(pipeline_context)

        assert run.failed_stage.name == "Quality-Gate"
        assert run.failed_stage.result.kind == FailureKind.QUALITY_GATE_REJECTED
        assert not command_mocker.was_called_with("docker build")
        assert messages == [FAILURE_BANNER]
