"""
Constants for asar archives, patch sources and configuration
Based on the layout written by the Electron asar packer
"""

# Archive format
ASAR_EXTENSION = ".asar"
UNPACKED_SUFFIX = ".unpacked"
SIZE_PICKLE_LENGTH = 8  # uint32 payload length + uint32 header size
PICKLE_ALIGNMENT = 4

# Integrity block written for every packed file
INTEGRITY_ALGORITHM = "SHA256"
INTEGRITY_BLOCK_SIZE = 4 * 1024 * 1024  # 4 MiB

# Patch definitions
PATCHES_DIR_NAME = "patches"
DIFF_PATCH_EXTENSION = ".diff"
PATTERN_PATCH_EXTENSION = ".json"

# Backups are written as <asar>.<epoch millis>.backup
BACKUP_SUFFIX = ".backup"

# Default values
DEFAULT_TIMEOUT = 10
DEFAULT_RETRIES = 3
DEFAULT_ENCODING = "utf-8"

# Platform constants
PLATFORM_WINDOWS = "windows"
PLATFORM_MAC = "macos"
PLATFORM_LINUX = "linux"

PLATFORMS = [PLATFORM_WINDOWS, PLATFORM_MAC, PLATFORM_LINUX]

# Windows installs keep one directory per version: app-1.2.3
WINDOWS_APP_DIR_PATTERN = r"^app-(\d+)\.(\d+)\.(\d+)$"
WINDOWS_APP_ARCHIVE = "resources/app.asar"

# Config
CONFIG_DIR_NAME = "asar_patcher"
CONFIG_FILE_NAME = "config.json"

# User agent
USER_AGENT = "asar-patcher/{version} (Python)"
