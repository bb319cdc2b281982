"""
    Serial port discovery, for choosing the port of a device profile.
    Ports are listed with the details that can identify them (hardware id, USB vid/pid and stable
    by-id path). A SerialPortDiscovery is polled and posts events as ports appear and disappear.
"""

import logging
import os
import time

from autoserial.model import PortDescriptor
from autoserial.ports.locator import serial_port_info
from autoserial.support.events import EventSource
from autoserial.support.mixins import CommonEqualityMixin

logger = logging.getLogger(__name__)

BY_ID_DIRECTORY = '/dev/serial/by-id'


class ResourceEvent(CommonEqualityMixin):
    """ Notification about a resource. """
    def __init__(self, source, key, resource):
        """
        :param source   The ResourceDiscovery that posted this event
        :param key An identifier for the resource, such as the port name.
        :param resource The resource itself, such as a PortDescriptor.
        """
        self.source = source
        self.key = key
        self.resource = resource


class ResourceAvailableEvent(ResourceEvent):
    """ Signifies that a resource is available. """


class ResourceUnavailableEvent(ResourceEvent):
    """ Signifies that a resource has become unavailable. """


class PolledResourceDiscovery:
    """
    Determines updates to the available resources in response to calling update(),
    and fires a ResourceAvailableEvent or ResourceUnavailableEvent to the listeners for each change.
    A resource that has changed is reported as unavailable and then available again.
    """

    def __init__(self):
        self.listeners = EventSource()
        self.previous = {}      # the previous known resources

    def _is_allowed(self, key, resource):
        """
        Template method to allow subclasses to exclude resources from discovery.
        """
        return True

    def attached(self, key, resource):
        """template method for subclasses to process a new resource"""
        logger.info("available port: %s", key)

    def detached(self, key, resource):
        """template method for subclasses to process a removed resource"""
        logger.info("unavailable port: %s", key)

    def _changed_events(self, available: dict) -> list:
        """
        Computes which resources have been added, removed or changed.
        :param available: dictionary of resource key to resource.
        :return: returns a list of events to send
        """
        # any key mapped to None after adding the current resources has been removed.
        current_resources = {p: None for p in self.previous}
        current_resources.update(available)

        events = []
        for key, current in current_resources.items():
            previous = self.previous.get(key, None)
            if current == previous:
                continue
            if previous is not None:
                self.detached(key, previous)
                events.append(ResourceUnavailableEvent(self, key, previous))
            if current is not None:
                self.attached(key, current)
                events.append(ResourceAvailableEvent(self, key, current))
        return events

    def _fetch_available(self):
        """ Template method for subclasses to determine the current resources available.
        :return: a dictionary of resource key to resource.
        """
        return {}

    def update(self):
        available = {k: v for k, v in self._fetch_available().items() if self._is_allowed(k, v)}
        events = self._changed_events(available)
        self.previous = available
        self.listeners.fire_all(events)
        return events


def by_id_links(directory=BY_ID_DIRECTORY):
    """
    Maps each port device to its stable path under /dev/serial/by-id, where the platform provides one.
    """
    if not os.path.isdir(directory):
        return {}
    links = {}
    for name in sorted(os.listdir(directory)):
        path = os.path.join(directory, name)
        links[os.path.realpath(path)] = path
    return links


def describe_port(info, links=None):
    """
    Builds a PortDescriptor from a pyserial ListPortInfo.
    """
    def known(text):
        # pyserial reports missing details as n/a
        return text if text and text != 'n/a' else None

    vid_pid = "%04X:%04X" % (info.vid, info.pid) if info.vid is not None and info.pid is not None else None
    description = known(info.description)
    display_name = "%s (%s)" % (info.device, description) if description else info.device
    by_id = links.get(os.path.realpath(info.device)) if links else None
    return PortDescriptor(info.device, display_name, known(info.hwid), vid_pid, by_id)


def discover_ports(ports=serial_port_info, links=by_id_links):
    """
    :return: a list of PortDescriptor for the serial ports present, sorted by port name.
    """
    by_id = links()
    return sorted((describe_port(p, by_id) for p in ports()), key=lambda d: d.port_name)


class SerialPortDiscovery(PolledResourceDiscovery):
    """ Monitors the serial ports present. """

    def __init__(self, discover=discover_ports):
        super().__init__()
        self.discover = discover

    def _fetch_available(self):
        return {d.port_name: d for d in self.discover()}


def monitor(interval=1.0, discovery=None, running=lambda: True):
    """
    Logs serial ports as they are plugged in and removed. Useful for finding the details to identify a device.
    """
    discovery = discovery or SerialPortDiscovery()
    discovery.listeners += lambda e: logger.info("%s %s", type(e).__name__, e.resource)
    while running():
        discovery.update()
        time.sleep(interval)
