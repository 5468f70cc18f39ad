# Copyright (c) 2026 - 2026, Oracle and/or its affiliates. All rights reserved.
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/.

"""This module provides functions to manage default values."""

import configparser
import logging
import os
import pathlib
import shutil

logger: logging.Logger = logging.getLogger(__name__)


class ConfigParser(configparser.ConfigParser):
    """This class extends ConfigParser with useful methods."""

    def get_list(
        self,
        section: str,
        item: str,
        delimiter: str | None = None,
        fallback: list | None = None,
    ) -> list[str]:
        """Parse and return a list of strings from an item in ``defaults.ini``.

        If ``delimiter`` is not set (default: None), strings are split on any whitespace character
        and empty strings are discarded. Duplicated values are removed while the order of the first
        occurrences is kept.

        Parameters
        ----------
        section : str
            The section in ``defaults.ini``.
        item : str
            The item to parse the list.
        delimiter : str | None
            The delimiter used to split the strings.
        fallback : list | None
            The fallback value in case the section or item is missing.

        Returns
        -------
        list[str]
            The result list of strings or the fallback if errors.

        Examples
        --------
        Given the following ``defaults.ini``

        .. code-block::

            [fetcher]
            tar_suffixes =
                .tar.gz .tgz
                .tar.xz

        .. code-block:: python3

            defaults.get_list("fetcher", "tar_suffixes")  # ['.tar.gz', '.tgz', '.tar.xz']
        """
        try:
            value = self.get(section, item)
        except (configparser.NoSectionError, configparser.NoOptionError) as error:
            logger.debug(error)
            return list(fallback or [])

        content = [elem.strip() for elem in value.split(sep=delimiter)]
        return list(dict.fromkeys(elem for elem in content if elem))


defaults = ConfigParser()


def load_defaults(user_config_path: str) -> bool:
    """Read the default values from ``defaults.ini`` file and store them in the defaults global object.

    The ``defaults.ini`` shipped with pkgbuilder is always read first. The user configuration, if it
    exists, is read afterwards and therefore takes precedence.

    Parameters
    ----------
    user_config_path : str
        The path to the user's defaults configuration file.

    Returns
    -------
    bool
        Return True if succeeded or False if failed.
    """
    curr_dir = pathlib.Path(__file__).parent.absolute()
    config_files = [os.path.join(curr_dir, "defaults.ini")]
    if user_config_path:
        if not os.path.isfile(user_config_path):
            logger.error("The defaults configuration file %s does not exist.", user_config_path)
            return False
        config_files.append(user_config_path)

    try:
        defaults.read(config_files, encoding="utf8")
        return True
    except (configparser.Error, ValueError) as error:
        logger.error("Failed to read the defaults.ini files.")
        logger.error(error)
        return False


def create_defaults(output_path: str, cwd_path: str) -> bool:
    """Create the ``defaults.ini`` file at ``output_path`` for end users to customize.

    Parameters
    ----------
    output_path : str
        The directory where the ``defaults.ini`` will be created.
    cwd_path : str
        The path to the current working directory.

    Returns
    -------
    bool
        Return True if succeeded or False if failed.
    """
    src_path = os.path.join(pathlib.Path(__file__).parent.absolute(), "defaults.ini")

    # ConfigParser.write does not preserve the comments, so we copy the file directly.
    dest_path = os.path.join(output_path, "defaults.ini")
    try:
        shutil.copy2(src_path, dest_path)
        logger.info("Dumped the default values in %s.", os.path.relpath(dest_path, cwd_path))
        return True
    except (shutil.Error, OSError) as error:
        logger.error("Failed to create %s: %s.", os.path.relpath(dest_path, cwd_path), error)
        return False
