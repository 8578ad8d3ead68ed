import logging
import sqlite3
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from services.music_library import ColumnInfo, TableInfo

# Room metadata owned by Cubic Music; the app refuses databases whose identity
# hash or version do not match what its migrations expect.
ROOM_MASTER_ID = 42
ROOM_IDENTITY_HASH = '205c24811149a247279bcbfdc2d6c396'
ANDROID_LOCALE = 'en_US'
USER_VERSION = 23


@dataclass(frozen=True)
class Column:
    name: str
    type: str
    not_null: bool = False
    autoincrement: bool = False


@dataclass(frozen=True)
class ForeignKey:
    column: str
    parent_table: str
    parent_column: str = 'id'


@dataclass(frozen=True)
class Table:
    name: str
    columns: Tuple[Column, ...]
    primary_key: Tuple[str, ...] = ()
    foreign_keys: Tuple[ForeignKey, ...] = ()

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]


@dataclass(frozen=True)
class Index:
    name: str
    table: str
    columns: Tuple[str, ...]
    unique: bool = False


@dataclass(frozen=True)
class View:
    name: str
    select: str


def _song_fk(column: str = 'songId') -> ForeignKey:
    return ForeignKey(column, 'Song')


TARGET_TABLES: Tuple[Table, ...] = (
    Table(
        'Song',
        (
            Column('id', 'TEXT', not_null=True),
            Column('title', 'TEXT', not_null=True),
            Column('artistsText', 'TEXT'),
            Column('durationText', 'TEXT'),
            Column('thumbnailUrl', 'TEXT'),
            Column('likedAt', 'INTEGER'),
            Column('totalPlayTimeMs', 'INTEGER', not_null=True),
        ),
        primary_key=('id',),
    ),
    Table(
        'Playlist',
        (
            Column('id', 'INTEGER', not_null=True, autoincrement=True),
            Column('name', 'TEXT', not_null=True),
            Column('browseId', 'TEXT'),
        ),
    ),
    Table(
        'SongPlaylistMap',
        (
            Column('songId', 'TEXT', not_null=True),
            Column('playlistId', 'INTEGER', not_null=True),
            Column('position', 'INTEGER', not_null=True),
        ),
        primary_key=('songId', 'playlistId'),
        foreign_keys=(_song_fk(), ForeignKey('playlistId', 'Playlist')),
    ),
    Table(
        'Artist',
        (
            Column('id', 'TEXT', not_null=True),
            Column('name', 'TEXT'),
            Column('thumbnailUrl', 'TEXT'),
            Column('timestamp', 'INTEGER'),
            Column('bookmarkedAt', 'INTEGER'),
        ),
        primary_key=('id',),
    ),
    Table(
        'SongArtistMap',
        (
            Column('songId', 'TEXT', not_null=True),
            Column('artistId', 'TEXT', not_null=True),
        ),
        primary_key=('songId', 'artistId'),
        foreign_keys=(_song_fk(), ForeignKey('artistId', 'Artist')),
    ),
    Table(
        'Album',
        (
            Column('id', 'TEXT', not_null=True),
            Column('title', 'TEXT'),
            Column('thumbnailUrl', 'TEXT'),
            Column('year', 'TEXT'),
            Column('authorsText', 'TEXT'),
            Column('shareUrl', 'TEXT'),
            Column('timestamp', 'INTEGER'),
            Column('bookmarkedAt', 'INTEGER'),
        ),
        primary_key=('id',),
    ),
    Table(
        'SongAlbumMap',
        (
            Column('songId', 'TEXT', not_null=True),
            Column('albumId', 'TEXT', not_null=True),
            Column('position', 'INTEGER'),
        ),
        primary_key=('songId', 'albumId'),
        foreign_keys=(_song_fk(), ForeignKey('albumId', 'Album')),
    ),
    Table(
        'SearchQuery',
        (
            Column('id', 'INTEGER', not_null=True, autoincrement=True),
            Column('query', 'TEXT', not_null=True),
        ),
    ),
    Table(
        'QueuedMediaItem',
        (
            Column('id', 'INTEGER', not_null=True, autoincrement=True),
            Column('mediaItem', 'BLOB', not_null=True),
            Column('position', 'INTEGER'),
        ),
    ),
    Table(
        'Format',
        (
            Column('songId', 'TEXT', not_null=True),
            Column('itag', 'INTEGER'),
            Column('mimeType', 'TEXT'),
            Column('bitrate', 'INTEGER'),
            Column('contentLength', 'INTEGER'),
            Column('lastModified', 'INTEGER'),
            Column('loudnessDb', 'REAL'),
        ),
        primary_key=('songId',),
        foreign_keys=(_song_fk(),),
    ),
    Table(
        'Event',
        (
            Column('id', 'INTEGER', not_null=True, autoincrement=True),
            Column('songId', 'TEXT', not_null=True),
            Column('timestamp', 'INTEGER', not_null=True),
            Column('playTime', 'INTEGER', not_null=True),
        ),
        foreign_keys=(_song_fk(),),
    ),
    Table(
        'Lyrics',
        (
            Column('songId', 'TEXT', not_null=True),
            Column('fixed', 'TEXT'),
            Column('synced', 'TEXT'),
        ),
        primary_key=('songId',),
        foreign_keys=(_song_fk(),),
    ),
)

TARGET_INDEXES: Tuple[Index, ...] = (
    Index('index_SongPlaylistMap_songId', 'SongPlaylistMap', ('songId',)),
    Index('index_SongPlaylistMap_playlistId', 'SongPlaylistMap', ('playlistId',)),
    Index('index_SongArtistMap_songId', 'SongArtistMap', ('songId',)),
    Index('index_SongArtistMap_artistId', 'SongArtistMap', ('artistId',)),
    Index('index_SongAlbumMap_songId', 'SongAlbumMap', ('songId',)),
    Index('index_SongAlbumMap_albumId', 'SongAlbumMap', ('albumId',)),
    Index('index_SearchQuery_query', 'SearchQuery', ('query',), unique=True),
    Index('index_Event_songId', 'Event', ('songId',)),
)

TARGET_VIEWS: Tuple[View, ...] = (
    View('SortedSongPlaylistMap', 'SELECT * FROM SongPlaylistMap ORDER BY position'),
)


def _quote(name: str) -> str:
    return f'`{name}`'


def _column_sql(column: Column) -> str:
    if column.autoincrement:
        return f'{_quote(column.name)} {column.type} PRIMARY KEY AUTOINCREMENT NOT NULL'
    sql = f'{_quote(column.name)} {column.type}'
    if column.not_null:
        sql += ' NOT NULL'
    return sql


def create_table_sql(table: Table) -> str:
    """Render ``table`` the way Room writes its own CREATE TABLE statements."""
    parts = [_column_sql(column) for column in table.columns]
    if table.primary_key:
        parts.append('PRIMARY KEY(' + ', '.join(_quote(name) for name in table.primary_key) + ')')
    for fk in table.foreign_keys:
        parts.append(
            f'FOREIGN KEY({_quote(fk.column)}) REFERENCES {_quote(fk.parent_table)}'
            f'({_quote(fk.parent_column)}) ON UPDATE NO ACTION ON DELETE CASCADE'
        )
    return f'CREATE TABLE {_quote(table.name)} (' + ', '.join(parts) + ')'


def create_index_sql(index: Index) -> str:
    kind = 'UNIQUE INDEX' if index.unique else 'INDEX'
    columns = ', '.join(_quote(name) for name in index.columns)
    return f'CREATE {kind} {_quote(index.name)} ON {_quote(index.table)} ({columns})'


def create_view_sql(view: View) -> str:
    return f'CREATE VIEW {_quote(view.name)} AS {view.select}'


def schema_statements() -> List[str]:
    statements = [create_table_sql(table) for table in TARGET_TABLES]
    statements.extend(create_index_sql(index) for index in TARGET_INDEXES)
    statements.extend(create_view_sql(view) for view in TARGET_VIEWS)
    return statements


def apply_target_schema(conn: sqlite3.Connection):
    """Creates the Cubic Music tables, indexes, view and Room metadata rows."""
    cursor = conn.cursor()
    for statement in schema_statements():
        cursor.execute(statement)

    cursor.execute('CREATE TABLE room_master_table (id INTEGER PRIMARY KEY, identity_hash TEXT)')
    cursor.execute(
        'INSERT INTO room_master_table (id, identity_hash) VALUES (?, ?)',
        (ROOM_MASTER_ID, ROOM_IDENTITY_HASH),
    )
    cursor.execute('CREATE TABLE android_metadata (locale TEXT)')
    cursor.execute('INSERT INTO android_metadata VALUES (?)', (ANDROID_LOCALE,))
    logger.debug("Created %d target tables", len(TARGET_TABLES))


def stamp_user_version(conn: sqlite3.Connection, version: int = USER_VERSION):
    conn.execute(f'PRAGMA user_version = {int(version)}')


def _describe_column(table: Table, column: Column) -> str:
    if column.autoincrement:
        return f'{column.type} PK AUTOINCREMENT'
    text = column.type
    if column.not_null:
        text += ' NOT NULL'
    if table.primary_key == (column.name,):
        text += ' PK'
    return text


def describe_target_schema() -> List[TableInfo]:
    """Returns the target layout in the shape used for introspected sources."""
    return [
        TableInfo(
            name=table.name,
            columns=[ColumnInfo(column.name, _describe_column(table, column)) for column in table.columns],
            row_count=0,
        )
        for table in TARGET_TABLES
    ]


def get_target_table(name: str) -> Optional[Table]:
    for table in TARGET_TABLES:
        if table.name == name:
            return table
    return None


def table_names(tables: Iterable[Table] = TARGET_TABLES) -> List[str]:
    return [table.name for table in tables]
