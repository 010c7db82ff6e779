"""DuckDB-based storage for pipeline stage outputs."""

from pathlib import Path
from typing import Optional

import duckdb
import polars as pl


class PipelineStore:
    """
    DuckDB-based storage for the tables each pipeline stage produces.

    Every saved table is registered in a _checkpoints metadata table so a
    later command (e.g. classify after validate) can tell which stages of a
    run already exist.
    """

    def __init__(self, db_path: Path):
        """
        Initialize PipelineStore with a DuckDB database.

        Args:
            db_path: Path to DuckDB database file. Parent directories
                     are created automatically.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.conn = duckdb.connect(str(self.db_path))

        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS _checkpoints (
                table_name VARCHAR PRIMARY KEY,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                row_count INTEGER,
                description VARCHAR
            )
        """)

    def save_dataframe(
        self,
        df: pl.DataFrame,
        table_name: str,
        description: str = "",
        replace: bool = True
    ) -> None:
        """
        Save a polars DataFrame to DuckDB as a table.

        Args:
            df: DataFrame to save
            table_name: Name for the DuckDB table
            description: Optional description for checkpoint metadata
            replace: If True, replace existing table; if False, append
        """
        if not isinstance(df, pl.DataFrame):
            raise ValueError("df must be a polars.DataFrame")

        if replace:
            self.conn.execute(f"CREATE OR REPLACE TABLE {table_name} AS SELECT * FROM df")
        else:
            self.conn.execute(f"INSERT INTO {table_name} SELECT * FROM df")

        row_count = self.conn.execute(f"SELECT COUNT(*) FROM {table_name}").fetchone()[0]
        self.conn.execute("""
            INSERT OR REPLACE INTO _checkpoints (table_name, row_count, description, created_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
        """, [table_name, row_count, description])

    def load_dataframe(self, table_name: str) -> Optional[pl.DataFrame]:
        """
        Load a table as a polars DataFrame.

        Args:
            table_name: Name of the DuckDB table

        Returns:
            DataFrame or None if table doesn't exist
        """
        try:
            return self.conn.execute(f"SELECT * FROM {table_name}").pl()
        except duckdb.CatalogException:
            return None

    def has_checkpoint(self, table_name: str) -> bool:
        """
        Check if a stage output has been saved.

        Args:
            table_name: Name of the table to check

        Returns:
            True if checkpoint exists, False otherwise
        """
        result = self.conn.execute(
            "SELECT COUNT(*) FROM _checkpoints WHERE table_name = ?",
            [table_name]
        ).fetchone()
        return result[0] > 0

    def get_checkpoint(self, table_name: str) -> Optional[dict]:
        """Return the metadata of one checkpoint, or None if it doesn't exist."""
        for checkpoint in self.list_checkpoints():
            if checkpoint["table_name"] == table_name:
                return checkpoint
        return None

    def list_checkpoints(self) -> list[dict]:
        """
        List all checkpoints with metadata.

        Returns:
            List of dicts with keys table_name, created_at, row_count,
            description (newest first)
        """
        result = self.conn.execute("""
            SELECT table_name, created_at, row_count, description
            FROM _checkpoints
            ORDER BY created_at DESC, table_name
        """).fetchall()

        return [
            {
                "table_name": row[0],
                "created_at": row[1],
                "row_count": row[2],
                "description": row[3],
            }
            for row in result
        ]

    def delete_checkpoint(self, table_name: str) -> None:
        """
        Delete a stage table and its metadata.

        Args:
            table_name: Name of the table to delete
        """
        self.conn.execute(f"DROP TABLE IF EXISTS {table_name}")
        self.conn.execute(
            "DELETE FROM _checkpoints WHERE table_name = ?",
            [table_name]
        )

    def close(self) -> None:
        """Close the DuckDB connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - closes connection."""
        self.close()
        return False

    @classmethod
    def from_config(cls, config: "PipelineConfig") -> "PipelineStore":
        """
        Create PipelineStore from a PipelineConfig.

        Args:
            config: PipelineConfig instance

        Returns:
            PipelineStore instance
        """
        return cls(config.duckdb_path)
