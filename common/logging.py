import numpy as np


def log_store_summary(logger, context):
    users = context["user_profiles"]
    contents = context["content_profiles"]

    logger.info("=== Profile Store ===")
    logger.info(f"Users: {len(users):,}")
    logger.info(f"Content items: {len(contents):,}")

    if users:
        history_sizes = np.array([len(p.interaction_history) for p in users.values()])
        logger.info(f"Mean interactions per user: {history_sizes.mean():.2f}")
        logger.info(f"Max interactions per user: {history_sizes.max()}")
        logger.info(f"Users with no positive signal: {sum(1 for p in users.values() if not p.preferences)}")

    if contents:
        popularity = np.array([p.popularity for p in contents.values()])
        untagged = sum(1 for p in contents.values() if not p.tags)
        logger.info(f"Popularity min/mean/max: {popularity.min():.2f} / {popularity.mean():.2f} / {popularity.max():.2f}")
        logger.info(f"Content without tags: {untagged:,} ({100 * untagged / len(contents):.1f}%)")


def log_experiment_summary(logger, experiment):
    logger.info("=" * 80)
    logger.info(f"EXPERIMENT {experiment.id}: {experiment.status.value}")
    logger.info("=" * 80)
    logger.info(f"{'Algorithm':<20} {'Users':>8} {'N':>8} {'Mean':>12} {'Std':>12}")
    logger.info("-" * 80)

    for algo in experiment.algorithms:
        stats = experiment.results.get(algo, {}).get(experiment.primary_metric, {})
        logger.info(
            f"{algo:<20} "
            f"{len(experiment.group_sizes.get(algo, ())):>8} "
            f"{stats.get('count', 0):>8} "
            f"{stats.get('mean', float('nan')):>12.4f} "
            f"{stats.get('std', float('nan')):>12.4f}"
        )

    logger.info("-" * 80)
    if experiment.winner:
        logger.info(f"🏆 Best {experiment.primary_metric}: {experiment.winner}")
