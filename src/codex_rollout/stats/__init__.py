"""Usage statistics and cost estimation over parsed rollout sessions."""
