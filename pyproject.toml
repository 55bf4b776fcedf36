[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rvemu"
version = "0.1.0"
description = "A userland RISC-V (RV64I) emulator with a GDB remote stub"
requires-python = ">=3.10"
dependencies = []
keywords = ["risc-v", "riscv", "emulator", "rv64i", "elf", "gdb"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
rvemu = "rvemu.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["rvemu"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
