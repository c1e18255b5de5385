"""Main module for the CrystalMC provisioning and launch API.

The package is split in small modules following the pipeline: the version manifest is
loaded (`manifest`), resolved into download queues (`resolve`, `artifact`), drained by
the download orchestrator (`download`), a Java runtime is found or installed (`java`,
`provision`) and finally the game process is composed and run (`launch`). The
`standard` module glues all of these together.
"""

LAUNCHER_NAME = "crystalmc"
LAUNCHER_VERSION = "1.0.0"
LAUNCHER_DISPLAY_NAME = "CrystalClient"
LAUNCHER_AUTHORS = ["CrystalMC contributors"]
LAUNCHER_COPYRIGHT = "CrystalMC  Copyright (C) 2021-2023  CrystalMC contributors"
LAUNCHER_URL = "https://github.com/crystaldev/crystalmc"
