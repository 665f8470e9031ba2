import numpy as np


# region Metrics
def compute_aggregate_metrics(metric_dict):
    """Compute mean and std of per-observation metrics, filtering out NaN values."""
    aggregated = {}

    for metric_name, scores in metric_dict.items():
        scores_arr = np.asarray(scores, dtype=np.float64)
        valid_scores = scores_arr[~np.isnan(scores_arr)]

        if len(valid_scores) > 0:
            aggregated[metric_name] = {
                "mean": float(valid_scores.mean()),
                "std": float(valid_scores.std()),
                "count": int(len(valid_scores)),
            }
        else:
            aggregated[metric_name] = {
                "mean": np.nan,
                "std": np.nan,
                "count": 0,
            }

    return aggregated


def safe_rate(numerator, denominator) -> float:
    """Ratio that reads 0.0 instead of dividing by zero."""
    if not denominator:
        return 0.0
    return float(numerator) / float(denominator)


# endregion
