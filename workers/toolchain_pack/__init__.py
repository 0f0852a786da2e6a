"""
toolchain_pack — relocatable LLVM + binutils bundle pipeline.

Resolves the LLVM release to build, drives the external tc-build scripts,
then fixes up and packs the install tree into a redistributable archive.
"""

__version__ = "0.1.0"
PACKAGE_NAME = "toolchain_pack"
SCHEMA_VERSION = "0.1"
