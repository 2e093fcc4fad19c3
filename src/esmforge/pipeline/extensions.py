"""
Source extension to browser extension mapping.
"""

# Compiled/source languages and the extension their output is served under.
# No value here is also a key, so remapping twice equals remapping once.
SRC_FILE_EXTENSION_MAPPING = {
    'mjs': 'js',
    'jsx': 'js',
    'ts': 'js',
    'tsx': 'js',
    'vue': 'js',
    'svelte': 'js',
    'mdx': 'js',
    'svx': 'js',
    'elm': 'js',
    'scss': 'css',
    'sass': 'css',
    'less': 'css',
}

CANONICAL_SCRIPT_EXTENSION = 'js'


def remap(ext: str) -> str:
    """Return the output extension for ext; unknown extensions pass through."""
    return SRC_FILE_EXTENSION_MAPPING.get(ext, ext)
