"""

Serial device pipelines

- Device profile: the configuration for one serial device. How to locate its port, the line settings,
  the frame decoder, the parser and the forwarders that receive the parsed messages.
- Port locator: resolves a profile's identity (port name, by-id path, USB vid/pid, pnp id) to the
  port name present on this machine right now.
- Frame decoder: segments the byte stream from the port into frames. Delimiter, header/footer,
  fixed length and pass-through.
- Parser: turns a frame into zero or more ParsedMessage instances. Line, JSON field, scale, barcode.
- Forwarder: delivers each message to an output channel. TCP (server broadcast or client), MQTT,
  clipboard and simulated keystrokes. Each forwarder has its own lifecycle and reconnect policy.
- DeviceRunner: runs one device. Locates and opens the port, reads, decodes, parses and forwards,
  and when the port goes away, closes it and tries again with exponential backoff.
- PipelineOrchestrator: keeps one runner per device profile. A new set of profiles is reconciled
  against the running instances: removed devices are stopped, new devices are started, and
  changed devices have their pipeline swapped, restarting the port only when the serial settings
  changed.


## Threading

Each runner has a run thread that maintains the connection. While the port is open, a second
thread reads the port and hands each batch of bytes through a queue to the run thread, which
decodes, parses and forwards. Stopping the runner stops both threads before returning.

Forwarders are called from the run thread, so they must not block for long. The TCP client and the
MQTT forwarder never sleep while waiting to reconnect; the message is dropped and the next
attempt is made once the backoff delay has passed.

Status queries read in-memory fields only and never wait on I/O.

"""
