"""Pure receipt text parsing pipeline: no file I/O, no runtime imports."""
