from .backends import BleakBackend
from .linkband import LinkBand


def find_devices(timeout=10, verbose=True):
    """Scan for LinkBand headbands via Bluetooth Low Energy (BLE). Call 'find' from the terminal."""
    backend = BleakBackend()
    if verbose:
        print(f"Searching for LinkBands (max. {timeout} seconds)...")
    devices = backend.scan(timeout=timeout)
    bands = [d for d in devices if LinkBand.is_linkband(d.get("name"))]

    if verbose:
        if bands:
            for b in bands:
                rssi = b.get("rssi")
                signal = f", RSSI {rssi} dBm" if rssi is not None else ""
                print(f'Found device {b["name"]}, MAC Address {b["address"]}{signal}')
        else:
            print("No LinkBands found. Ensure the headband is on and Bluetooth is enabled.")

    return bands


def resolve_address(timeout: int = 10, verbose: bool = True) -> str:
    """
    Scan and return the address of the single LinkBand in range.

    Raises ValueError if none or several are found; pass an explicit
    address in that case.
    """
    bands = find_devices(timeout=timeout, verbose=verbose)
    if not bands:
        raise ValueError("No LinkBand devices discovered. Ensure the headband is on and in range.")
    if len(bands) > 1:
        names = ", ".join(str(b["name"]) for b in bands)
        raise ValueError(
            f"Multiple LinkBand devices discovered ({names}). Please specify --address to choose one."
        )

    return bands[0]["address"]
