"""Instance Lifecycle Example.

Creates a VM on ZStack, formats its data disk, prints the Docker URL,
then stops and removes it.

Credentials come from ZSTACK_ACCOUNT_NAME, ZSTACK_ACCOUNT_PASSWORD and
ZSTACK_ENDPOINT. The machine itself is read from ``[machines.demo]`` in
zmachine.toml.
"""

import asyncio

import zmachine as zm


async def main() -> None:
    config = zm.resolve_machine("demo")
    handler_ids = zm.setup_logging(zm.LogConfig(level="INFO", console=True))

    try:
        async with zm.open_driver(config, provision=zm.format_data_disk) as driver:
            await driver.pre_create_check()
            await driver.create()

            print(f"state: {await driver.get_state()}")
            print(f"docker: {await driver.get_url()}")

            await driver.stop()
            await driver.remove()
    finally:
        zm.teardown_logging(handler_ids)


if __name__ == "__main__":
    asyncio.run(main())
