"""HTML landing page served on /."""
from html import escape
from typing import Iterable

from .models import TargetSpec
from .utils import format_duration

LANDING_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>iPerf3 Exporter</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, "Helvetica Neue", Arial, sans-serif;
            padding: 0;
            margin: 0;
            line-height: 1.5;
        }}
        header {{
            background-color: #1a73e8;
            color: white;
            padding: 1rem;
            margin-bottom: 1rem;
        }}
        header h1 {{ margin: 0; font-size: 1.5rem; }}
        .container {{ padding: 0 1rem; max-width: 1200px; margin: 0 auto; }}
        .links a {{ color: #1a73e8; text-decoration: none; font-weight: bold; margin-right: 1rem; }}
        table {{ border-collapse: collapse; width: 100%; }}
        th, td {{ text-align: left; padding: 8px; border-bottom: 1px solid #ddd; }}
        th {{ background-color: #f2f2f2; }}
        pre {{ background-color: #f5f5f5; padding: 10px; border-radius: 5px; overflow-x: auto; }}
    </style>
</head>
<body>
    <header>
        <div class="container"><h1>iPerf3 Exporter</h1></div>
    </header>
    <div class="container">
        <p>The iPerf3 exporter runs scheduled and on-demand iPerf3 probes for Prometheus monitoring.</p>
        <div class="links">
            <a href="{metrics_path}">Metrics</a>
            <a href="/health">Health</a>
        </div>
        <p>Version: {version}</p>

        <h2>Quick Start</h2>
        <p>To probe a target:</p>
        <pre><a href="{probe_path}?target=example.com">{probe_path}?target=example.com</a></pre>

        <h2>Probe Parameters</h2>
        <table>
            <tr><th>Parameter</th><th>Description</th><th>Default</th></tr>
            <tr><td>target</td><td>Target host to probe (required)</td><td>-</td></tr>
            <tr><td>port</td><td>Port that the target iperf3 server is listening on</td><td>5201</td></tr>
            <tr><td>reverse_mode</td><td>Run iperf3 in reverse mode (server sends, client receives)</td><td>false</td></tr>
            <tr><td>protocol</td><td>Run iperf3 over tcp or udp</td><td>tcp</td></tr>
            <tr><td>bitrate</td><td>Target bitrate in bits/sec (format: #[KMG][/#])</td><td>-</td></tr>
            <tr><td>period</td><td>Duration of the iperf3 test</td><td>5s</td></tr>
        </table>

        <h2>Scheduled Targets</h2>
        {targets_table}
    </div>
</body>
</html>
"""


def render_targets_table(targets: Iterable[TargetSpec]) -> str:
    rows = []
    for t in targets:
        rows.append(
            "<tr><td>{host}</td><td>{port}</td><td>{protocol}</td><td>{reverse}</td>"
            "<td>{bitrate}</td><td>{period}</td><td>{interval}</td><td>{timeout}</td></tr>".format(
                host=escape(t.host),
                port=t.port,
                protocol=t.protocol.value,
                reverse="true" if t.reverse_mode else "false",
                bitrate=escape(t.bitrate or "-"),
                period=format_duration(t.period),
                interval=format_duration(t.interval) if t.interval > 0 else "-",
                timeout=format_duration(t.timeout),
            )
        )
    if not rows:
        return "<p>No targets configured.</p>"
    header = (
        "<tr><th>Host</th><th>Port</th><th>Protocol</th><th>Reverse</th>"
        "<th>Bitrate</th><th>Period</th><th>Interval</th><th>Timeout</th></tr>"
    )
    return "<table>" + header + "".join(rows) + "</table>"


def render_landing_page(metrics_path: str, probe_path: str, version: str, targets: Iterable[TargetSpec]) -> str:
    return LANDING_PAGE_TEMPLATE.format(
        metrics_path=escape(metrics_path),
        probe_path=escape(probe_path),
        version=escape(version),
        targets_table=render_targets_table(targets),
    )
