"""Front-end parsers for C# and Visual Basic .NET."""
