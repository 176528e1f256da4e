"""OPC DA <-> InfluxDB gateway"""

__version__ = "1.0.0"
