"""Host platform collaborators: permissions, network discovery and disks."""
