import argparse
import sys

from config import AgentConfig, configure_logging
from data_types import TaskStatus
from safety import SafetyGate
from sandbox import SandboxRunner
from task_service import build_service

# ==========================================
# Main Execution Flow
# ==========================================


def cmd_run(args, config: AgentConfig) -> int:
    print("Initializing coding agent...\n")
    service = build_service(config)
    try:
        task = service.create_task(
            goal=args.goal,
            test_cases=args.test_case,
            description=args.description,
            max_iterations=args.max_iterations,
        )
        print(f"--- Running Task {task.id}: {task.goal[:50]}... ---")
        task = service.wait_for(task.id)

        for attempt in service.get_attempts(task.id):
            mark = "✅" if attempt.test_passed else "❌"
            label = attempt.error_type.value if attempt.error_type else "PASSED"
            print(f"  {mark} Iteration {attempt.iteration_number}: {label}")

        print(f"\nStatus: {task.status.value} after {task.current_iteration} iteration(s)")
        if task.generated_code:
            print(f"\n```java\n{task.generated_code}\n```")
        if task.error_message:
            print(f"Error: {task.error_message}")

        if args.output:
            path = service.export_task(task.id, args.output)
            print(f"Exported task record to {path}")
    finally:
        service.shutdown()

    return 0 if task.status == TaskStatus.COMPLETED else 1


def cmd_check(args, config: AgentConfig) -> int:
    with open(args.file) as f:
        verdict = SafetyGate().check(f.read())
    print(f"Safe: {verdict.safe}")
    for violation in verdict.violations:
        print(f"  - {violation}")
    return 0 if verdict.safe else 1


def cmd_execute(args, config: AgentConfig) -> int:
    with open(args.file) as f:
        result = SandboxRunner(config).execute(f.read())
    print(f"Compiled: {result.compiled}  Executed: {result.executed}  "
          f"Timed out: {result.timed_out}  Exit code: {result.exit_code}  "
          f"({result.execution_time_ms} ms)")
    print(f"stdout: {result.stdout}")
    if result.stderr:
        print(f"stderr: {result.stderr}")
    return 0 if result.success else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Iterative Java code-generation agent")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Generate code for a goal until its test cases pass")
    run.add_argument("--goal", required=True)
    run.add_argument("--test-case", action="append", required=True,
                     help='e.g. "Input: 2, Output: true" (repeatable)')
    run.add_argument("--description")
    run.add_argument("--max-iterations", type=int)
    run.add_argument("--output", help="Write the task and its attempts to this JSON file")

    check = sub.add_parser("check", help="Run the safety gate over a Java file")
    check.add_argument("file")

    execute = sub.add_parser("execute", help="Compile and run a Java file in the sandbox")
    execute.add_argument("file")

    args = parser.parse_args(argv)
    config = AgentConfig.from_env()
    configure_logging(config.log_level)

    handlers = {"run": cmd_run, "check": cmd_check, "execute": cmd_execute}
    return handlers[args.command](args, config)


if __name__ == "__main__":
    sys.exit(main())
