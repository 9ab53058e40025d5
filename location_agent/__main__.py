"""
Run the agent as a process: python -m location_agent [config_path]

Readings arrive on stdin, one JSON object per line:

    {"latitude": 52.52, "longitude": 13.40, "accuracy": 8.0, "timestamp": "2025-06-29T10:30:00.000Z"}

timestamp is optional and defaults to arrival time; altitude, bearing and
speed may be added. Malformed lines are logged and skipped. End of input,
SIGTERM or SIGINT stops the agent after a final flush. Logs go to stderr.

The config path may also come from LOCATION_AGENT_CONFIG_PATH.
"""
import os
import sys

from .daemon import main


def config_path_from(argv, environ=os.environ):
    if len(argv) > 1:
        return argv[1]
    return environ.get('LOCATION_AGENT_CONFIG_PATH')


if __name__ == "__main__":
    main(config_path_from(sys.argv))
