#!/usr/bin/env python3
"""Demo: publish and clear a rich presence against the loopback server."""

import logging
import os
import tempfile

from . import ActivityBuilder, Client, LoopbackServer


def run_demo(transport: str = "blocking"):
    """Run a complete loopback demo."""
    print("presencewire demo - rich presence over a loopback IPC socket")
    print("=" * 40)

    socket_dir = tempfile.mkdtemp(prefix="pw-")
    server = LoopbackServer(os.path.join(socket_dir, "discord-ipc-0"))
    server.start()

    try:
        with Client("1045800378228281345", endpoint=server.address, transport=transport) as client:
            print(f"Connected as {client.ready_data['user']['username']} on {client.endpoint}")

            activity = (
                ActivityBuilder()
                .state("Reviewing pull requests")
                .details("presencewire")
                .start_timestamp_now()
                .large_image("logo")
                .button("Source", "https://example.com/presencewire")
                .build()
            )
            response = client.set_activity(activity)
            print(f"Published: {response.data}")

            client.clear_activity()
            print("Cleared activity.")

        print(f"Server saw {len(server.commands)} command(s).")
    finally:
        server.stop()
        os.rmdir(socket_dir)

    print("\nDemo completed!")


def main():
    """Main entry point for the demo."""
    logging.basicConfig(level=os.environ.get("PRESENCEWIRE_LOG", "WARNING"))
    run_demo()


if __name__ == "__main__":
    main()
