"""monitor-spine command line interface."""
