"""Custom exceptions for tree ensemble construction and loading.

Every exception derives from TreeIRError so callers can catch the whole family
at once. Each one also subclasses the builtin that best matches its meaning,
so code that already handles KeyError, ValueError or IndexError keeps working.

Builder exceptions:
- NotFoundError: Raised for a nonexistent staged tree or node key.
- DuplicateKeyError: Raised when a node key is reused within a staged tree.
- AlreadyDefinedError: Raised when a role is assigned to a non-empty node.
- InUseError: Raised when deleting a node still referenced as a child.
- ValidationFailedError: Raised when a commit finds structural violations.

Model exceptions:
- OutOfRangeError: Raised for a position outside a finalized tree or model.

Loader exceptions:
- FormatError: Raised when a loader cannot interpret its source.
- LoaderNotFoundError: Raised when no loader is registered under a format name.
"""

from __future__ import annotations


class TreeIRError(Exception):
    """Base exception for all treeir errors."""


class NotFoundError(TreeIRError, KeyError):
    """Raised when a staged tree index or node key does not exist.

    Attributes:
        tree_index (int): Index of the staged tree that was referenced.
        key (int | None): Node key that was referenced, or None when the tree
            itself is missing.

    Examples:
        >>> err = NotFoundError(tree_index=0, key=10)
        >>> str(err)
        'Node 10 not found in tree 0'
    """

    tree_index: int
    key: int | None

    def __init__(self, *, tree_index: int, key: int | None = None) -> None:
        """Initialize NotFoundError.

        Args:
            tree_index (int): Index of the staged tree that was referenced.
            key (int | None): Node key that was referenced. Defaults to None.
        """
        if key is None:
            message = f"Tree {tree_index} not found"
        else:
            message = f"Node {key} not found in tree {tree_index}"
        super().__init__(message)
        self.tree_index = tree_index
        self.key = key

    def __str__(self) -> str:
        """Return the message without KeyError's quoting.

        Returns:
            str: The error message.
        """
        return str(self.args[0])

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including tree index and key.
        """
        return f"{self.__class__.__name__}(tree_index={self.tree_index!r}, key={self.key!r})"


class DuplicateKeyError(TreeIRError, ValueError):
    """Raised when a node key is already in use within a staged tree.

    Attributes:
        tree_index (int): Index of the staged tree.
        key (int): The duplicated node key.
    """

    tree_index: int
    key: int

    def __init__(self, *, tree_index: int, key: int) -> None:
        """Initialize DuplicateKeyError.

        Args:
            tree_index (int): Index of the staged tree.
            key (int): The duplicated node key.
        """
        super().__init__(f"Node key {key} is already in use in tree {tree_index}")
        self.tree_index = tree_index
        self.key = key

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including tree index and key.
        """
        return f"{self.__class__.__name__}(tree_index={self.tree_index!r}, key={self.key!r})"


class AlreadyDefinedError(TreeIRError, ValueError):
    """Raised when assigning a role to a staged node that already has one.

    Attributes:
        tree_index (int): Index of the staged tree.
        key (int): Key of the node whose role is already set.
        role (str): The role the node already holds, "test" or "leaf".
    """

    tree_index: int
    key: int
    role: str

    def __init__(self, *, tree_index: int, key: int, role: str) -> None:
        """Initialize AlreadyDefinedError.

        Args:
            tree_index (int): Index of the staged tree.
            key (int): Key of the node whose role is already set.
            role (str): The role the node already holds.
        """
        super().__init__(f"Node {key} in tree {tree_index} is already defined as a {role} node")
        self.tree_index = tree_index
        self.key = key
        self.role = role

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including tree index, key and role.
        """
        return f"{self.__class__.__name__}(tree_index={self.tree_index!r}, key={self.key!r}, role={self.role!r})"


class InUseError(TreeIRError, ValueError):
    """Raised when deleting a staged node that another node references as a child.

    Attributes:
        tree_index (int): Index of the staged tree.
        key (int): Key of the node that could not be deleted.
        referrers (list[int]): Keys of the test nodes referencing it, sorted.
    """

    tree_index: int
    key: int
    referrers: list[int]

    def __init__(self, *, tree_index: int, key: int, referrers: list[int]) -> None:
        """Initialize InUseError.

        Args:
            tree_index (int): Index of the staged tree.
            key (int): Key of the node that could not be deleted.
            referrers (list[int]): Keys of the test nodes referencing it.
        """
        super().__init__(f"Node {key} in tree {tree_index} is referenced as a child by nodes {sorted(referrers)}")
        self.tree_index = tree_index
        self.key = key
        self.referrers = sorted(referrers)

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including tree index, key and referrers.
        """
        return (
            f"{self.__class__.__name__}("
            f"tree_index={self.tree_index!r}, key={self.key!r}, referrers={self.referrers!r})"
        )


class ValidationFailedError(TreeIRError, ValueError):
    """Raised when committing a builder whose staged trees are not well formed.

    Problems from every staged tree are gathered before this is raised, so a
    single exception describes everything that needs repair.

    Attributes:
        problems (dict[int, list[str]]): Mapping of staged tree index to the
            structural problems found in that tree. Only failing trees appear.

    Examples:
        >>> err = ValidationFailedError(problems={1: ["no root designated"]})
        >>> err.tree_indices
        [1]
        >>> print(err.format_details())
        Tree 1: no root designated
    """

    problems: dict[int, list[str]]

    def __init__(self, problems: dict[int, list[str]]) -> None:
        """Initialize ValidationFailedError.

        Args:
            problems (dict[int, list[str]]): Problems per failing tree index.
        """
        count = sum(len(tree_problems) for tree_problems in problems.values())
        super().__init__(f"Model validation failed with {count} problem(s) in trees {sorted(problems)}")
        self.problems = problems

    @property
    def tree_indices(self) -> list[int]:
        """list[int]: Sorted indices of the trees that failed validation."""
        return sorted(self.problems)

    def format_details(self) -> str:
        """Format one line per problem, ordered by tree index.

        Returns:
            str: Multi-line string of the form ``Tree <i>: <problem>``.
        """
        return "\n".join(
            f"Tree {tree_index}: {problem}"
            for tree_index in self.tree_indices
            for problem in self.problems[tree_index]
        )

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including the problems mapping.
        """
        return f"{self.__class__.__name__}(problems={self.problems!r})"


class OutOfRangeError(TreeIRError, IndexError):
    """Raised when a position is outside a finalized tree or model.

    Attributes:
        position (int): The requested position.
        size (int): Number of valid positions.
        kind (str): What was indexed, "node" or "tree".
    """

    position: int
    size: int
    kind: str

    def __init__(self, *, position: int, size: int, kind: str = "node") -> None:
        """Initialize OutOfRangeError.

        Args:
            position (int): The requested position.
            size (int): Number of valid positions.
            kind (str): What was indexed. Defaults to "node".
        """
        super().__init__(f"{kind.capitalize()} position {position} is out of range [0, {size})")
        self.position = position
        self.size = size
        self.kind = kind

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including position, size and kind.
        """
        return f"{self.__class__.__name__}(position={self.position!r}, size={self.size!r}, kind={self.kind!r})"


class FormatError(TreeIRError, ValueError):
    """Raised when a loader cannot interpret its source as a tree ensemble.

    Attributes:
        format_name (str): Name of the format the loader handles.
        reason (str): Why the source could not be interpreted.
    """

    format_name: str
    reason: str

    def __init__(self, format_name: str, reason: str) -> None:
        """Initialize FormatError.

        Args:
            format_name (str): Name of the format the loader handles.
            reason (str): Why the source could not be interpreted.
        """
        super().__init__(f"Cannot load '{format_name}' model: {reason}")
        self.format_name = format_name
        self.reason = reason

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including format name and reason.
        """
        return f"{self.__class__.__name__}(format_name={self.format_name!r}, reason={self.reason!r})"


class LoaderNotFoundError(TreeIRError, KeyError):
    """Raised when no loader is registered under the requested format name.

    Attributes:
        format_name (str): The requested format name.
        available (list[str]): Registered format names, sorted.
    """

    format_name: str
    available: list[str]

    def __init__(self, format_name: str, available: list[str]) -> None:
        """Initialize LoaderNotFoundError.

        Args:
            format_name (str): The requested format name.
            available (list[str]): Registered format names.
        """
        super().__init__(f"No loader registered for format '{format_name}'. Available formats: {sorted(available)}")
        self.format_name = format_name
        self.available = sorted(available)

    def __str__(self) -> str:
        """Return the message without KeyError's quoting.

        Returns:
            str: The error message.
        """
        return str(self.args[0])

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including format name and available formats.
        """
        return f"{self.__class__.__name__}(format_name={self.format_name!r}, available={self.available!r})"
