"""Fixed probe phrases used to group messages into topics."""

TOPIC_PROBES: tuple[str, ...] = (
    "BGP routing issues",
    "DNS problems and configuration",
    "IPv6 deployment",
    "Network security incidents",
    "Peering and interconnection",
    "Hardware failures",
    "Performance optimization",
    "Outage post-mortems",
    "Configuration management",
    "Monitoring and alerting",
)

RESULTS_PER_PROBE = 20

RELATED_QUERY_TEMPLATE = "network operations {topic} technical discussion troubleshooting"
