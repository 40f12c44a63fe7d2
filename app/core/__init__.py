# Core: settings, logging, errors
