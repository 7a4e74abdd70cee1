"""Control WiZ bulbs over UDP and keep named rooms of them."""

__version__ = "0.2.0"
