#!/usr/bin/env python3
"""
Example usage of meshrun
This demonstrates the execution modes and output handling of the pool.

Usage:
    python example.py root@host1 root@host2 ...
"""

import sys
from typing import List

from meshrun import (
    connect, Config, ConnectionPool, ExecutionOptions, StructuredLogger, CommandFailed
)

# Author: Vamsi


def example_basic_usage(hosts: List[str]):
    """
    Basic usage example - run a command everywhere and collect the output.

    :param hosts: Hosts of the form user@host
    :return: None
    """
    print("=== Basic Usage Example ===")

    results = connect(hosts, lambda conn: conn.run("hostname", output="capture"))
    for host, result in results.items():
        print(f"  {host}: {result.output.strip()} (exit {result.exit_code})")


def example_pretty_output(hosts: List[str]):
    """
    Pretty output example - every line is tagged with the stream and the host.

    :param hosts: Hosts of the form user@host
    :return: None
    """
    print("\n=== Pretty Output Example ===")

    connect(hosts, lambda conn: conn.run("uptime; echo 'to stderr' 1>&2"))


def example_modes(hosts: List[str]):
    """
    Serial, batched and parallel execution over one pool.

    :param hosts: Hosts of the form user@host
    :return: None
    """
    print("\n=== Execution Modes Example ===")

    logger = StructuredLogger(level="info", log_file="logs/example.log", enable_console=False)
    with ConnectionPool(hosts, logger=logger) as pool:
        print("Serial (list order):")
        pool.execute(lambda conn: conn.run("date +%T"), serial=True)

        print("\nBatches of two:")
        pool.execute(lambda conn: conn.run("sleep 1; date +%T"), batch_size=2)

        print("\nParallel with one worker per host:")
        pool.execute(lambda conn: conn.run("date +%T"), concurrency="unlimited")

        for host, metrics in pool.metrics().items():
            print(f"  {host}: {metrics['commands_executed']} commands, "
                  f"{metrics['avg_duration']:.2f}s average")


def example_failures(hosts: List[str]):
    """
    Failure handling example - fail loudly, or inspect exit codes.

    :param hosts: Hosts of the form user@host
    :return: None
    """
    print("\n=== Failure Handling Example ===")

    try:
        connect(hosts, lambda conn: conn.run("exit 3", output="capture"))
    except CommandFailed as e:
        print(f"  Failed as expected: {e}")

    options = ExecutionOptions(output="capture", continue_on_failure=True)
    results = connect(hosts, lambda conn: conn.run("exit 3", options))
    for host, result in results.items():
        print(f"  {host}: exit code {result.exit_code}")


def example_block_args(hosts: List[str]):
    """
    Parameterized blocks - extra arguments are passed to every invocation.

    :param hosts: Hosts of the form user@host
    :return: None
    """
    print("\n=== Block Arguments Example ===")

    def check_service(conn, service):
        return conn.run(f"systemctl is-active {service}", output="capture", continue_on_failure=True)

    config = Config(hosts=hosts, concurrency=4)
    with ConnectionPool(config.hosts, config=config) as pool:
        results = pool.execute(check_service, block_args=("sshd",))
        for host, result in results.items():
            print(f"  {host}: sshd {result.output.strip() or 'unknown'}")


def main():
    """Run all examples against the hosts given on the command line."""
    hosts = sys.argv[1:]
    if not hosts:
        print(__doc__)
        sys.exit(1)

    example_basic_usage(hosts)
    example_pretty_output(hosts)
    example_modes(hosts)
    example_failures(hosts)
    example_block_args(hosts)


if __name__ == "__main__":
    main()
