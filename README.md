# mmetl

`mmetl` takes a Slack export archive (a zip file) and turns it into a
Mattermost bulk import file in JSON Lines format. It converts users, public
and private channels, group and direct messages, threads, reactions, huddles
and file attachments. It can also check an export for problems before you
import it.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Usage

### Transform a Slack export

```
mmetl transform slack --team myteam --file my_export.zip --output mm_export.jsonl
```

Options:

| Option | Meaning |
| --- | --- |
| `-t`, `--team` | An existing Mattermost team to import into (required). |
| `-f`, `--file` | The Slack export zip file (required). |
| `-o`, `--output` | The output path (default `bulk-export.jsonl`). It must not be a directory. |
| `-d`, `--attachments-dir` | Where attachments are written (default `data`). Files go into `bulk-export-attachments` inside it, which is created if missing. |
| `-c`, `--skip-convert-posts` | Do not convert mentions and markup. Meant for testing only. |
| `-a`, `--skip-attachments` | Do not copy attachments out of the export. |
| `--skip-empty-emails` | Allow users with no e-mail address. The result is invalid data. |
| `--default-email-domain` | Build a missing e-mail address from the username and this domain, for example `example.com`. |
| `-l`, `--allow-download` | Download attachments that are missing from the archive. Interrupted downloads resume. |
| `-p`, `--discard-invalid-props` | Drop posts whose props are too large, instead of only dropping the props. |
| `--debug` | Write debug messages to the log. |

A JSON log is written to `transform-slack.log` in the current directory; it
is replaced on every run.

The output file holds, in order: a version line, public channels, private
channels, users, group channels, direct channels and posts. Some details of
the conversion:

- User mentions (`<@U123>`), `<!here>`, `<!channel>`, `<!everyone>` and
  channel mentions (`<#C123>`) become `@name`, `@here`, `@channel`, `@all`
  and `~name`. Links, bold, strikethrough and quotes become Markdown.
- Group messages with more than 8 members become private channels.
  Direct and group channels with fewer than two known members are left out.
- Users referred to by posts or reactions but missing from the export are
  created as placeholders named "Deleted User".
- Huddles become posts of type `custom_calls` with the text "Call ended".
- A post with more than 5 attachments gets extra replies carrying the rest.
- Files in the archive that cannot be parsed are logged and treated as empty.

If a user has no e-mail address and neither `--skip-empty-emails` nor
`--default-email-domain` is given, the command prints an error and exits
with status 1.

### Check a Slack export

```
mmetl check slack --file my_export.zip
```

This confirms that `channels.json` and `integration_logs.json` are at the top
level of the archive, runs the transformation without writing output or
copying attachments, and reports duplicate channels, unknown members and
posts that belong to no channel. Results are appended to `check-slack.log`.
Debug logging is on by default (`--no-debug` turns it off);
`--skip-empty-emails` and `--default-email-domain` work as above.

### Version

```
mmetl version
```

### Users file override

If the environment variable `USERS_JSON_FILE` is set, users are read from
that file instead of the `users.json` in the archive.

## Using it from Python

```python
import logging
import zipfile

from mmetl.transformer import Transformer

logger = logging.getLogger("mmetl")
with zipfile.ZipFile("my_export.zip") as archive:
    transformer = Transformer("myteam", logger)
    slack_export = transformer.parse_slack_export_file(archive, False)
    transformer.transform(slack_export, "data", True, False, False, False, "example.com")
    warnings = transformer.check_intermediate()
    transformer.export("mm_export.jsonl")
```

`Transformer.transform` takes the export, the attachments directory, and the
flags `skip_attachments`, `discard_invalid_props`, `allow_download`,
`skip_empty_emails`, then the default e-mail domain. It raises
`mmetl.intermediate.MissingEmailError` for a user without an address when
no way to fill one in was given. `Transformer.precheck(archive)` returns
whether the required files are present.

Other modules can be used on their own: `mmetl.parse` reads the archive and
converts markup, `mmetl.export` builds and writes import lines,
`mmetl.check` and `mmetl.precheck` hold the checks, and
`mmetl.download.download_into(filename, url, size)` performs a resumable
download, raising `DownloadError`, or `OverlapNotEqualError` when the resumed
data does not match what is already on disk.

## What it does not do

Only Slack exports are read. The package writes an import file and
attachments; it does not connect to a Mattermost server or run the import.