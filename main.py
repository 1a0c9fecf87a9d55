"""CLI entry point: python main.py --strategy canary --version v2"""

import argparse
import asyncio
import sys

from src.deployment import (
    CreateDeploymentRequest,
    CreateRollbackRequest,
    DeploymentConfiguration,
    DeploymentError,
    DeploymentOrchestrator,
    DeploymentStatus,
    NoopProvisioner,
    OrchestratorConfig,
    RolloutConfig,
)
from src.logging_config import LogFormat, LoggingConfig, LogLevel, configure_logging
from src.settings import get_settings


class FlakyProvisioner(NoopProvisioner):
    """Provisioner whose probes never pass for one version."""

    def __init__(self, failing_version: str):
        self.failing_version = failing_version

    async def health_probe(self, deployment) -> bool:
        return deployment.model_version_id != self.failing_version


async def run(args) -> int:
    settings = get_settings()
    config = OrchestratorConfig.from_settings(settings)
    if args.fast:
        config.rollout = RolloutConfig(
            canary_traffic_increment=args.increment,
            canary_promotion_delay_seconds=0,
            blue_green_switch_delay_seconds=0,
            rolling_batch_size=settings.rolling_batch_size,
            rolling_batch_delay_seconds=0,
            health_check_timeout_seconds=1,
            health_check_interval_seconds=0.1,
        )
    provisioner = FlakyProvisioner(args.version) if args.fail else NoopProvisioner()
    orchestrator = DeploymentOrchestrator(provisioner=provisioner, config=config)

    # Step 1: Baseline deployment the new version can fall back to
    print("\n[1/3] Deploying baseline version...")
    baseline = await orchestrator.start_rollout(
        CreateDeploymentRequest(
            model_version_id=args.baseline,
            environment=args.environment,
            strategy="blue_green",
        ),
        initiator="cli",
    )
    baseline = await orchestrator.wait_for_rollout(baseline.deployment_id)
    print(f"  {baseline.model_version_id}: {baseline.status.value}")

    # Step 2: Roll out the new version
    print(f"\n[2/3] Rolling out {args.version} ({args.strategy})...")
    try:
        candidate = await orchestrator.start_rollout(
            CreateDeploymentRequest(
                model_version_id=args.version,
                environment=args.environment,
                strategy=args.strategy,
                configuration=DeploymentConfiguration(replicas=args.replicas),
            ),
            initiator="cli",
        )
    except DeploymentError as exc:
        print(f"  Rejected: {exc.message}")
        await orchestrator.shutdown()
        return 1
    candidate = await orchestrator.wait_for_rollout(candidate.deployment_id)
    print(f"  {candidate.model_version_id}: {candidate.status.value}")
    for split in orchestrator.list_traffic_splits(candidate.deployment_id):
        print(f"    traffic -> {split.percentage:3d}%")

    # Step 3: Health / rollback
    print("\n[3/3] Health and rollback...")
    if candidate.status == DeploymentStatus.ACTIVE and args.rollback:
        operation = await orchestrator.rollback(
            candidate.deployment_id,
            CreateRollbackRequest(reason="manual rollback from CLI"),
            initiator="cli",
        )
        operation = await orchestrator.wait_for_rollback(operation.rollback_id)
        print(f"  Rollback {operation.rollback_id}: {operation.status.value}")

    for deployment in orchestrator.list_deployments():
        health = orchestrator.get_deployment_health(deployment.deployment_id)
        print(
            f"  {deployment.model_version_id:12s} {deployment.status.value:12s} "
            f"score={health.health_score:3d} alerts={health.active_alerts}"
        )

    summary = orchestrator.get_summary()
    print(f"\n  Success rate: {summary['success_rate']:.0%}")
    await orchestrator.shutdown()
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Rollout Engine - drive a model version live and roll it back"
    )
    parser.add_argument("--version", default="v2", help="Model version to roll out")
    parser.add_argument("--baseline", default="v1", help="Version deployed first")
    parser.add_argument(
        "--strategy", default="canary",
        help="Rollout strategy: canary, blue_green or rolling"
    )
    parser.add_argument("--environment", default="staging", help="staging or production")
    parser.add_argument("--replicas", type=int, default=3, help="Replica count")
    parser.add_argument("--increment", type=int, default=25, help="Canary step in percent")
    parser.add_argument(
        "--fast", action="store_true",
        help="Skip promotion and batch delays"
    )
    parser.add_argument(
        "--fail", action="store_true",
        help="Make health probes fail to show automatic rollback"
    )
    parser.add_argument(
        "--rollback", action="store_true",
        help="Roll the new version back after it goes live"
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    configure_logging(
        LoggingConfig(
            level=LogLevel.DEBUG if args.verbose else LogLevel.WARNING,
            format=LogFormat.CONSOLE,
        )
    )

    print("=" * 60)
    print("ROLLOUT ENGINE")
    print(f"Version: {args.version}  Strategy: {args.strategy}  Env: {args.environment}")
    print("=" * 60)

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
