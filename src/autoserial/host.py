"""
Command line host: loads the device profiles from the config files, runs them and logs the status.
"""
import argparse
import logging
import os
import threading

from configobj import ConfigObjError

from autoserial.config.config import ConfigProfileStore, default_config_name
from autoserial.model import AutoSerialError
from autoserial.pipeline import PipelineOrchestrator
from autoserial.ports.discovery import discover_ports, monitor

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog='autoserial', description="Forwards data from serial devices")
    p.add_argument("--config-dir", default=os.getcwd(), help="directory holding the config files")
    p.add_argument("--config-name", default=default_config_name, help="base name of the config files")
    p.add_argument("--status-interval", type=float, default=10.0, help="seconds between status lines")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    p.add_argument("--list-ports", action="store_true", help="list the serial ports and exit")
    p.add_argument("--monitor-ports", action="store_true", help="log serial ports as they come and go")
    return p.parse_args(argv)


def format_status(snapshot):
    lines = ["%s, %d messages, %.1f/s" % (snapshot.connection_state.value, snapshot.total_messages,
                                          snapshot.messages_per_second)]
    for s in snapshot.device_statuses:
        line = "  %s [%s] %s on %s, %s, forwarders: %s, %d messages" % (
            s.device_id, s.display_name, s.connection_state.value, s.port_name or '-', s.parser_name,
            ', '.join(s.active_forwarders) or 'none', s.total_messages)
        if s.last_error:
            line += ", error: %s" % s.last_error
        lines.append(line)
    return '\n'.join(lines)


def run(orchestrator: PipelineOrchestrator, interval, stop_event: threading.Event):
    """ runs the devices until the event is set, logging the status every interval seconds. """
    orchestrator.start()
    try:
        while not stop_event.wait(interval):
            logger.info("status: %s", format_status(orchestrator.get_status()))
    finally:
        orchestrator.stop()


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.list_ports:
        for port in discover_ports():
            print("%s\t%s\t%s" % (port.port_name, port.vid_pid or '', port.by_id_path or port.pnp_id or ''))
        return 0
    if args.monitor_ports:
        try:
            monitor()
        except KeyboardInterrupt:
            pass
        return 0

    store = ConfigProfileStore(args.config_dir, args.config_name)
    try:
        profiles = store.load_profiles()
        orchestrator = PipelineOrchestrator()
        orchestrator.apply_config(profiles)
    except (ConfigObjError, AutoSerialError) as e:
        logger.error("unable to load the device profiles: %s", e)
        return 1
    if not profiles:
        logger.warning("no devices configured in %s", args.config_dir)

    try:
        run(orchestrator, args.status_interval, threading.Event())
    except KeyboardInterrupt:
        logger.info("stopped")
    return 0


if __name__ == '__main__':  # pragma no cover
    raise SystemExit(main())
