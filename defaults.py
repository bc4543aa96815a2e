"""
Default values for multispectral band coregistration.

These defaults define the values used throughout the alignment pipeline,
which aligns every band to the Red band with a 20 pixel search window.
They can be overridden by user input via command-line arguments, config files, or programmatic API.
"""

# Half-width of the (dx, dy) search window in pixels
DEFAULT_MAX_SHIFT = 20

# A candidate shift needs strictly more valid overlapping cells than this
DEFAULT_MIN_OVERLAP = 1000

# Band every other band is aligned to
DEFAULT_REFERENCE_BAND = 'Red'

# Band names assigned to a multi-band stack, in file order
DEFAULT_BAND_NAMES = ['Green', 'Red', 'NIR']

# Bands shown as (red, green, blue) in the false color composite
DEFAULT_COMPOSITE_BANDS = ['NIR', 'Red', 'Green']

# Candidate evaluation threads (1 = serial search)
DEFAULT_WORKERS = 1

# Default output directory
DEFAULT_OUTPUT_DIR = 'outputs'
