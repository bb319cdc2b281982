"""
Runs a set of devices from their profiles.

The orchestrator keeps one DeviceRunner per device id. Applying a configuration creates runners for
new devices, updates the profile of existing ones and stops those no longer configured.
"""
import logging
import threading

from autoserial.model import ConfigurationError, ConnectionState, DeviceProfile, OperationResult, SendResult, \
    StatusSnapshot
from autoserial.runner import DeviceRunner
from autoserial.support.events import EventSource

logger = logging.getLogger(__name__)

# the overall state is the first of these held by a running device
STATE_PRIORITY = (ConnectionState.CONNECTED, ConnectionState.CONNECTING, ConnectionState.RECONNECTING)


class PipelineOrchestrator:
    """
    Owns the device runners, keyed by device id.

    Fires each RawDataEvent from any device to the `raw_data` listeners.
    """

    def __init__(self, runner_factory=DeviceRunner):
        """
        :param runner_factory: creates the runner for a device profile.
        """
        self.runner_factory = runner_factory
        self.raw_data = EventSource()
        self.started = False
        self._runners = dict()      # device id to DeviceRunner
        self._lock = threading.Lock()

    def _snapshot(self):
        with self._lock:
            return [self._runners[k] for k in sorted(self._runners)]

    def _find(self, device_id):
        with self._lock:
            return self._runners.get(device_id)

    def _raw_data(self, event):
        self.raw_data.fire(event)

    def apply_config(self, profiles):
        """
        Reconciles the running devices with the given profiles.
        :raises ConfigurationError: when two profiles have the same device id.
        """
        profiles = list(profiles)
        ids = [p.device_id for p in profiles]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ConfigurationError("duplicate device ids: %s" % ', '.join(str(i) for i in duplicates))

        with self._lock:
            removed = [self._runners.pop(i) for i in list(self._runners) if i not in ids]
        for runner in removed:
            logger.info("removing device %s", runner.device_id)
            runner.raw_data -= self._raw_data
            runner.stop()

        for profile in profiles:
            self._apply_profile(profile)

    def _apply_profile(self, profile: DeviceProfile):
        with self._lock:
            runner = self._runners.get(profile.device_id)
            created = runner is None
            if created:
                runner = self.runner_factory(profile)
                runner.raw_data += self._raw_data
                self._runners[profile.device_id] = runner
        if created:
            logger.info("added device %s (%s)", profile.device_id, profile.connection.display_name)
        else:
            runner.apply_profile(profile)
        if self.started:
            runner.start()

    def start(self):
        self.started = True
        for runner in self._snapshot():
            runner.start()

    def stop(self):
        self.started = False
        for runner in self._snapshot():
            runner.stop()

    def subscribe_raw_data(self, maxsize=1000):
        """
        :return: a Subscription receiving the raw data from all devices. Close it to unsubscribe.
        """
        return self.raw_data.subscribe(maxsize)

    def get_status(self) -> StatusSnapshot:
        statuses = [r.get_status() for r in self._snapshot()]
        running = [s for s in statuses if s.running]
        states = {s.connection_state for s in running}
        state = next((s for s in STATE_PRIORITY if s in states), ConnectionState.DISCONNECTED)
        if len(running) == 1:
            parser_name = running[0].parser_name
        else:
            parser_name = 'Multiple' if running else ''
        forwarders = []
        for status in running:
            for name in status.active_forwarders:
                label = "%s:%s" % (status.display_name, name)
                if label not in forwarders:
                    forwarders.append(label)
        return StatusSnapshot(
            device_statuses=statuses,
            connection_state=state,
            parser_name=parser_name,
            active_forwarders=forwarders,
            total_messages=sum(s.total_messages for s in statuses),
            messages_per_second=sum(s.messages_per_second for s in statuses),
            last_error=next((s.last_error for s in running if s.last_error), None))

    def send(self, device_id, data, timeout=None) -> SendResult:
        runner = self._find(device_id)
        if runner is None:
            return SendResult.fail("device not connected")
        return runner.send(data, timeout)

    def start_device(self, device_id) -> OperationResult:
        runner = self._find(device_id)
        if runner is None:
            return OperationResult.fail("device not found")
        runner.start_manual()
        return OperationResult.ok()

    def stop_device(self, device_id) -> OperationResult:
        runner = self._find(device_id)
        if runner is None:
            return OperationResult.fail("device not found")
        runner.stop_manual()
        return OperationResult.ok()
