"""Setup script for servicectl.

The default build is pure Python. ``SERVICECTL_BUILD_COMPILED=1`` compiles
the library modules with Cython; Cython must then already be installed
(``pip install cython && SERVICECTL_BUILD_COMPILED=1 pip install --no-build-isolation .``).
"""

import os
from pathlib import Path

from setuptools import setup
from setuptools.command.build_py import build_py as build_py_orig
from setuptools.extension import Extension

PACKAGE_DIR = Path("servicectl")

# Kept as Python source:
# - __init__.py / __main__.py: package imports and `python -m servicectl`
# - windows_host.py: loaded by class name inside pywin32's service runner
PURE_MODULES = {"__init__.py", "__main__.py", "windows_host.py"}


def compiled_extensions():
    extensions = []
    for path in sorted(PACKAGE_DIR.rglob("*.py")):
        if path.name in PURE_MODULES:
            continue
        # servicectl/backends/linux.py -> servicectl.backends.linux
        module_name = ".".join(path.with_suffix("").parts)
        extensions.append(Extension(name=module_name, sources=[str(path)]))
    return extensions


class build_py(build_py_orig):
    """Leaves out the .py sources of modules shipped as extensions."""

    compiled_modules = set()

    def find_package_modules(self, package, package_dir):
        modules = super().find_package_modules(package, package_dir)
        return [
            (pkg, mod, file)
            for (pkg, mod, file) in modules
            if f"{pkg}.{mod}" not in self.compiled_modules
        ]


if os.environ.get("SERVICECTL_BUILD_COMPILED", "0") == "1":
    from Cython.Build import cythonize

    extensions = compiled_extensions()
    build_py.compiled_modules = {ext.name for ext in extensions}
    setup(
        ext_modules=cythonize(
            extensions,
            compiler_directives={"language_level": "3", "embedsignature": True},
            annotate=False,
        ),
        cmdclass={"build_py": build_py},
    )
else:
    setup()
