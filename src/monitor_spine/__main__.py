from monitor_spine.cli.app import app

app(prog_name="monitor-spine")
