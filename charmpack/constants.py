import stat


# Well-known member names
REVISION_NAME = "revision"
METADATA_NAME = "metadata.yaml"
CONFIG_NAME = "config.yaml"
ACTIONS_NAME = "actions.yaml"
HOOKS_DIR = "hooks"

# Permission policy
DIR_MODE = 0o755
DEFAULT_FILE_MODE = 0o644
REVISION_FILE_MODE = 0o644
HOOK_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
SYMLINK_MODE = stat.S_IFLNK | 0o777

# ZIP container details
ZIP_UNIX_SYSTEM = 3          # create_system value for Unix hosts
ZIP_MSDOS_DIR_FLAG = 0x10    # MS-DOS directory attribute in the low byte
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)

# Safety bounds
MAX_PATH_BYTES = 1024
MAX_REVISION_BYTES = 64
