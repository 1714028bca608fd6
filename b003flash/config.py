from dataclasses import dataclass


__all__ = ["VID_B003", "PID_B003", "B003Config"]


VID_B003 = 0x1209
PID_B003 = 0xB003


@dataclass
class B003Config:
    """
    Tunables of a bootloader session.

    :ivar int report_id:
        HID report used for both commands and responses.

    :ivar int interface:
        USB interface number of the HID function.

    :ivar int send_retries:
        Number of failed command sends tolerated before giving up.

    :ivar int receive_retries:
        Number of failed response reads tolerated during one command before giving up.

    :ivar int poll_rounds:
        Number of times the response is fetched while waiting for the completion marker.

    :ivar float retry_delay:
        Delay between transport retries, in seconds.

    :ivar float poll_interval:
        Delay between completion polls, in seconds.

    :ivar float long_poll_interval:
        Delay between completion polls while an erase or page program is in progress,
        in seconds.
    """
    report_id:          int   = 0xAA
    interface:          int   = 0
    send_retries:       int   = 10
    receive_retries:    int   = 10
    poll_rounds:        int   = 20
    retry_delay:        float = 0.05
    poll_interval:      float = 0.05
    long_poll_interval: float = 0.05
