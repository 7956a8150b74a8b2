from katsite.cli import entry_point

entry_point()
